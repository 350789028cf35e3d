"""Auth request payloads."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...services.auth import MIN_PASSWORD_LENGTH
from ...services.trackers import resolve_timezone


class LoginForm(BaseModel):
    """Credentials submitted to the login endpoint."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1, max_length=256)


class RegisterForm(LoginForm):
    """New account payload; the timezone seeds tracker defaults."""

    password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=256)
    timezone: Optional[str] = Field(default=None, max_length=64)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value:
            resolve_timezone(value)
        return value or None


class ProfileForm(BaseModel):
    """Profile fields the API lets a user change."""

    timezone: Optional[str] = Field(default=None, max_length=64)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value:
            resolve_timezone(value)
        return value or None


__all__ = ["LoginForm", "ProfileForm", "RegisterForm"]
