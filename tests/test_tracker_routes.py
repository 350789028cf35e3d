"""HTTP tests for the tracker and completion endpoints."""

from __future__ import annotations

import logging
from datetime import timedelta

import pytest

from lifearchitect.services.trackers import local_today

WEEKLY = {"title": "Run", "frequency": "weekly", "target_days": [1, 3, 5], "start_date": "2024-01-01"}


def _create(client, **overrides):
    payload = {**WEEKLY, **overrides}
    response = client.post("/api/trackers", json=payload)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["tracker"]


def _complete(client, tracker_id, day, **extra):
    return client.post(
        "/api/trackers/complete",
        json={"tracker_id": tracker_id, "completion_date": day, **extra},
    )


class TestAuthentication:
    @pytest.mark.parametrize(
        "method, url",
        [
            ("get", "/api/trackers"),
            ("post", "/api/trackers"),
            ("get", "/api/trackers/1"),
            ("post", "/api/trackers/complete"),
            ("get", "/api/trackers/due"),
        ],
    )
    def test_requires_session(self, client, method, url):
        response = getattr(client, method)(url, json={})
        assert response.status_code == 401
        assert response.get_json()["error"] == "unauthorized"


class TestCreateTracker:
    def test_create_weekly(self, auth_client):
        tracker = _create(auth_client)
        assert tracker["frequency"] == "weekly"
        assert tracker["target_days"] == [1, 3, 5]
        assert tracker["start_date"] == "2024-01-01"
        assert tracker["total_completions"] == 0
        assert tracker["is_active"] is True

    def test_create_alias_route(self, auth_client):
        response = auth_client.post("/api/trackers/create", json={"title": "Read"})
        assert response.status_code == 201
        body = response.get_json()
        assert body["success"] is True
        assert body["tracker"]["frequency"] == "daily"
        assert body["tracker"]["start_date"] == local_today("UTC").isoformat()

    def test_accepts_recurrence_aliases(self, auth_client):
        response = auth_client.post(
            "/api/trackers",
            json={"title": "Water plants", "recurrence_type": "every_x_days", "recurrence_value": 3},
        )
        assert response.status_code == 201
        tracker = response.get_json()["tracker"]
        assert tracker["frequency"] == "every_x_days"
        assert tracker["frequency_value"] == 3

    def test_target_days_are_normalised(self, auth_client):
        tracker = _create(auth_client, target_days=[5, 1, 5])
        assert tracker["target_days"] == [1, 5]

    @pytest.mark.parametrize(
        "payload",
        [
            {"title": "x", "frequency": "every_x_days", "frequency_value": 0},
            {"title": "x", "frequency": "weekly", "target_days": [1, 9]},
            {"title": "x", "frequency": "daily", "target_days": [1]},
            {"title": "x", "frequency": "fortnightly"},
            {"title": "x", "start_date": "2024-02-01", "end_date": "2024-01-01"},
            {"title": "x", "timezone": "Mars/Olympus"},
            {"title": ""},
            {},
        ],
    )
    def test_rejects_invalid_config(self, auth_client, payload):
        response = auth_client.post("/api/trackers", json=payload)
        assert response.status_code == 400
        body = response.get_json()
        assert body["error"] == "validation_error"
        assert body["errors"]

    def test_custom_dates_round_trip(self, auth_client):
        tracker = _create(
            auth_client,
            frequency="custom",
            target_days=[],
            custom_dates=["2024-03-01", "2024-01-15"],
        )
        assert tracker["custom_dates"] == ["2024-01-15", "2024-03-01"]


class TestCompleteTracker:
    def test_first_completion_then_upsert(self, auth_client):
        tracker = _create(auth_client)

        first = _complete(auth_client, tracker["id"], "2024-01-01", notes="easy")
        assert first.status_code == 201
        assert first.get_json()["created"] is True
        assert first.get_json()["completion"]["notes"] == "easy"

        again = _complete(auth_client, tracker["id"], "2024-01-01")
        assert again.status_code == 200
        assert again.get_json()["created"] is False
        assert again.get_json()["stats"]["total_completions"] == 1

    def test_missing_fields(self, auth_client):
        response = auth_client.post("/api/trackers/complete", json={"tracker_id": 1})
        assert response.status_code == 400
        fields = {error["field"] for error in response.get_json()["errors"]}
        assert "completion_date" in fields

    def test_malformed_date(self, auth_client):
        tracker = _create(auth_client)
        response = _complete(auth_client, tracker["id"], "01/02/2024")
        assert response.status_code == 400

    def test_unknown_tracker(self, auth_client):
        response = _complete(auth_client, 999, "2024-01-01")
        assert response.status_code == 404

    def test_other_users_tracker(self, auth_client, other_client):
        tracker = _create(auth_client)
        response = _complete(other_client, tracker["id"], "2024-01-01")
        assert response.status_code == 403

    def test_future_date_rejected(self, auth_client):
        tracker = _create(auth_client)
        future = local_today("UTC") + timedelta(days=2)
        response = _complete(auth_client, tracker["id"], future.isoformat())
        assert response.status_code == 400
        assert "future" in response.get_json()["message"]

    def test_completion_is_logged(self, auth_client, caplog):
        tracker = _create(auth_client)
        with caplog.at_level(logging.INFO, logger="lifearchitect"):
            first = _complete(auth_client, tracker["id"], "2024-01-01")
            again = _complete(auth_client, tracker["id"], "2024-01-01")

        assert (first.status_code, again.status_code) == (201, 200)
        records = [r for r in caplog.records if r.getMessage() == "Tracker completion recorded"]
        assert [r.new_row for r in records] == [True, False]

    def test_cached_aggregates_follow_completions(self, auth_client):
        tracker = _create(auth_client)
        for day in ("2024-01-01", "2024-01-03", "2024-01-08"):
            _complete(auth_client, tracker["id"], day)

        body = auth_client.get(f"/api/trackers/{tracker['id']}").get_json()["tracker"]
        assert body["total_completions"] == 3
        assert body["best_streak"] == 2
        # The 2024 run is long over, so today has no live streak.
        assert body["current_streak"] == 0


class TestStatsAndCalendar:
    @pytest.fixture
    def tracker(self, auth_client):
        tracker = _create(auth_client)
        for day in ("2024-01-01", "2024-01-03", "2024-01-08"):
            _complete(auth_client, tracker["id"], day)
        return tracker

    def test_stats_as_of(self, auth_client, tracker):
        response = auth_client.get(f"/api/trackers/{tracker['id']}/stats?as_of=2024-01-08")
        assert response.status_code == 200
        assert response.get_json()["stats"] == {
            "tracker_id": tracker["id"],
            "total_completions": 3,
            "current_streak": 1,
            "best_streak": 2,
            "completion_rate": 75,
            "last_completion_date": "2024-01-08",
            "next_scheduled_date": "2024-01-10",
        }

    def test_stats_bad_date(self, auth_client, tracker):
        response = auth_client.get(f"/api/trackers/{tracker['id']}/stats?as_of=yesterday")
        assert response.status_code == 400
        assert response.get_json()["error"] == "bad_request"

    def test_calendar_window(self, auth_client, tracker):
        response = auth_client.get(
            f"/api/trackers/{tracker['id']}/calendar?start=2024-01-01&end=2024-01-07"
        )
        assert response.status_code == 200
        days = response.get_json()["days"]
        assert len(days) == 7
        assert [d["is_scheduled"] for d in days] == [True, False, True, False, True, False, False]
        assert [d["completed"] for d in days] == [True, False, True, False, False, False, False]
        assert days[0]["completion"]["completion_date"] == "2024-01-01"
        assert days[1]["completion"] is None

    def test_calendar_defaults_to_month(self, auth_client, tracker):
        response = auth_client.get(f"/api/trackers/{tracker['id']}/calendar?start=2024-02-01")
        body = response.get_json()
        assert body["end"] == "2024-02-29"
        assert len(body["days"]) == 29

    @pytest.mark.parametrize(
        "query",
        ["start=2024-01-07&end=2024-01-01", "start=2024-01-01&end=2025-01-02", "start=nope"],
    )
    def test_calendar_rejects_bad_ranges(self, auth_client, tracker, query):
        response = auth_client.get(f"/api/trackers/{tracker['id']}/calendar?{query}")
        assert response.status_code == 400

    def test_calendar_of_other_user(self, other_client, tracker):
        response = other_client.get(f"/api/trackers/{tracker['id']}/calendar")
        assert response.status_code == 403

    def test_stats_on_last_representable_day(self, auth_client):
        tracker = _create(auth_client, frequency="once", target_days=[])
        response = auth_client.get(f"/api/trackers/{tracker['id']}/stats?as_of=9999-12-31")
        assert response.status_code == 200
        assert response.get_json()["stats"]["next_scheduled_date"] is None


class TestPausedTracker:
    @pytest.fixture
    def paused(self, auth_client):
        tracker = _create(auth_client, frequency="daily", target_days=[], is_active=False)
        _complete(auth_client, tracker["id"], "2024-01-02")
        return tracker

    def test_stats_keep_history_without_next_date(self, auth_client, paused):
        stats = auth_client.get(f"/api/trackers/{paused['id']}/stats?as_of=2024-01-02").get_json()["stats"]
        assert stats["best_streak"] == 1
        assert stats["total_completions"] == 1
        assert stats["next_scheduled_date"] is None

    def test_tracker_view_has_no_next_date(self, auth_client, paused):
        body = auth_client.get(f"/api/trackers/{paused['id']}").get_json()["tracker"]
        assert body["stats"]["next_scheduled_date"] is None

    def test_calendar_past_days_stay_scheduled(self, auth_client, paused):
        response = auth_client.get(f"/api/trackers/{paused['id']}/calendar?start=2024-01-01&end=2024-01-03")
        days = response.get_json()["days"]
        assert [d["is_scheduled"] for d in days] == [True, True, True]
        assert [d["completed"] for d in days] == [False, True, False]

    def test_calendar_future_days_are_not_scheduled(self, auth_client, paused):
        response = auth_client.get(f"/api/trackers/{paused['id']}/calendar?start=2099-01-01&end=2099-01-03")
        assert [d["is_scheduled"] for d in response.get_json()["days"]] == [False, False, False]

    def test_not_due(self, auth_client, paused):
        assert auth_client.get("/api/trackers/due?date=2024-01-03").get_json()["trackers"] == []


class TestListingAndDue:
    def test_list_reports_completed_today(self, auth_client):
        daily = _create(auth_client, title="Stretch", frequency="daily", target_days=[])
        _create(auth_client, title="Run")
        today = local_today("UTC").isoformat()
        assert _complete(auth_client, daily["id"], today).status_code == 201

        body = auth_client.get("/api/trackers").get_json()
        assert body["completedToday"] == [daily["id"]]
        rows = {row["title"]: row for row in body["trackers"]}
        assert rows["Stretch"]["completed_today"] is True
        assert rows["Stretch"]["current_streak"] == 1
        assert rows["Run"]["completed_today"] is False

    def test_list_excludes_other_users(self, auth_client, other_client):
        _create(auth_client)
        assert other_client.get("/api/trackers").get_json()["trackers"] == []

    def test_due_on_date(self, auth_client):
        tracker = _create(auth_client)
        _create(auth_client, title="Paused", is_active=False)

        monday = auth_client.get("/api/trackers/due?date=2024-01-01").get_json()["trackers"]
        assert [row["id"] for row in monday] == [tracker["id"]]
        assert monday[0]["due_date"] == "2024-01-01"

        tuesday = auth_client.get("/api/trackers/due?date=2024-01-02").get_json()["trackers"]
        assert tuesday == []

    def test_completions_on_date(self, auth_client):
        tracker = _create(auth_client)
        _complete(auth_client, tracker["id"], "2024-01-01")

        rows = auth_client.get("/api/trackers/completions?date=2024-01-01").get_json()["completions"]
        assert [row["tracker_id"] for row in rows] == [tracker["id"]]
        assert auth_client.get("/api/trackers/completions").status_code == 400

    def test_project_trackers(self, auth_client):
        _create(auth_client, title="Linked", project_id="proj-1")
        _create(auth_client, title="Loose")

        rows = auth_client.get("/api/projects/proj-1/trackers").get_json()["trackers"]
        assert [row["title"] for row in rows] == ["Linked"]


class TestUpdateAndDelete:
    def test_patch_title(self, auth_client):
        tracker = _create(auth_client)
        response = auth_client.patch(f"/api/trackers/{tracker['id']}", json={"title": "Jog"})
        assert response.status_code == 200
        assert response.get_json()["tracker"]["title"] == "Jog"

    def test_frequency_change_resets_other_fields(self, auth_client):
        tracker = _create(auth_client)
        response = auth_client.patch(f"/api/trackers/{tracker['id']}", json={"frequency": "daily"})
        assert response.status_code == 200
        body = response.get_json()["tracker"]
        assert body["frequency"] == "daily"
        assert body["target_days"] == []

    def test_patch_recomputes_aggregates(self, auth_client):
        tracker = _create(auth_client, frequency="daily", target_days=[])
        for day in ("2024-01-01", "2024-01-02"):
            _complete(auth_client, tracker["id"], day)
        response = auth_client.patch(
            f"/api/trackers/{tracker['id']}",
            json={"frequency": "every_x_days", "frequency_value": 2},
        )
        assert response.status_code == 200
        assert response.get_json()["tracker"]["best_streak"] == 1

    @pytest.mark.parametrize(
        "payload",
        [
            {"target_days": [9]},
            {"title": None},
            {"end_date": "2023-12-01"},
            {"frequency": "every_x_days", "frequency_value": 0},
        ],
    )
    def test_patch_rejects_invalid(self, auth_client, payload):
        tracker = _create(auth_client)
        response = auth_client.patch(f"/api/trackers/{tracker['id']}", json=payload)
        assert response.status_code == 400

    def test_pause_with_camel_case_flag(self, auth_client):
        tracker = _create(auth_client)
        response = auth_client.patch(f"/api/trackers/{tracker['id']}", json={"isActive": False})
        assert response.get_json()["tracker"]["is_active"] is False

    def test_undo_completion(self, auth_client):
        tracker = _create(auth_client)
        _complete(auth_client, tracker["id"], "2024-01-01")
        _complete(auth_client, tracker["id"], "2024-01-03")

        response = auth_client.delete(f"/api/trackers/{tracker['id']}/completions/2024-01-03")
        assert response.status_code == 200
        assert response.get_json()["stats"]["total_completions"] == 1

        missing = auth_client.delete(f"/api/trackers/{tracker['id']}/completions/2024-01-03")
        assert missing.status_code == 404

    def test_delete(self, auth_client, other_client):
        tracker = _create(auth_client)
        assert other_client.delete(f"/api/trackers/{tracker['id']}").status_code == 403

        response = auth_client.delete(f"/api/trackers/{tracker['id']}")
        assert response.status_code == 200
        assert auth_client.get(f"/api/trackers/{tracker['id']}").status_code == 404
