"""Tracker request payloads.

Field names follow the tracker wire contract. ``recurrence_type``,
``recurrence_value`` and ``recurrence_days`` are accepted as aliases because
older clients still send them.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from ...services.scheduling import Frequency, build_rule
from ...services.trackers import resolve_timezone


def _check_timezone(value: Optional[str]) -> Optional[str]:
    if value:
        resolve_timezone(value)
    return value or None


class TrackerForm(BaseModel):
    """Payload for creating a tracker."""

    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=1000)
    category: str = Field(default="general", max_length=100)
    icon: Optional[str] = Field(default=None, max_length=64)
    color: Optional[str] = Field(default=None, max_length=32)
    project_id: Optional[str] = Field(default=None, max_length=64)

    frequency: Frequency = Field(
        default=Frequency.DAILY,
        validation_alias=AliasChoices("frequency", "recurrence_type"),
    )
    frequency_value: int = Field(
        default=1,
        validation_alias=AliasChoices("frequency_value", "recurrence_value"),
    )
    target_days: list[int] = Field(
        default_factory=list,
        validation_alias=AliasChoices("target_days", "recurrence_days"),
    )
    custom_dates: list[date] = Field(default_factory=list)

    start_date: Optional[date] = Field(default=None, description="Defaults to today in the tracker's timezone")
    end_date: Optional[date] = None
    timezone: Optional[str] = Field(default=None, max_length=64)
    is_active: bool = True

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: Optional[str]) -> Optional[str]:
        return _check_timezone(value)

    @field_validator("project_id", mode="before")
    @classmethod
    def stringify_project(cls, value: object) -> object:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @model_validator(mode="after")
    def validate_schedule(self) -> "TrackerForm":
        """Reject parameters that do not fit the chosen frequency."""

        build_rule(self.frequency, self.frequency_value, self.target_days, self.custom_dates)
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class TrackerUpdateForm(BaseModel):
    """Partial update; only fields present in the payload are applied.

    The merged configuration is validated against the stored tracker by the
    route, since a change of frequency alone can invalidate stored fields.
    """

    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    category: Optional[str] = Field(default=None, max_length=100)
    icon: Optional[str] = Field(default=None, max_length=64)
    color: Optional[str] = Field(default=None, max_length=32)

    frequency: Optional[Frequency] = Field(
        default=None,
        validation_alias=AliasChoices("frequency", "recurrence_type"),
    )
    frequency_value: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("frequency_value", "recurrence_value"),
    )
    target_days: Optional[list[int]] = Field(
        default=None,
        validation_alias=AliasChoices("target_days", "recurrence_days"),
    )
    custom_dates: Optional[list[date]] = None

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    timezone: Optional[str] = Field(default=None, max_length=64)
    is_active: Optional[bool] = Field(
        default=None,
        validation_alias=AliasChoices("is_active", "isActive"),
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: Optional[str]) -> Optional[str]:
        return _check_timezone(value)

    @field_validator("title", "frequency", "start_date", "is_active")
    @classmethod
    def reject_null(cls, value: object) -> object:
        # Present-but-null would otherwise wipe a required column.
        if value is None:
            raise ValueError("Field cannot be null")
        return value


class CompletionForm(BaseModel):
    """Payload for recording a completion."""

    model_config = ConfigDict(str_strip_whitespace=True)

    tracker_id: int
    completion_date: date
    notes: Optional[str] = Field(default=None, max_length=500)


__all__ = ["CompletionForm", "TrackerForm", "TrackerUpdateForm"]
