"""Tests for conversion between local rows, client input and Google bodies."""

import pytest

from fitness_calendar.calendar.google_calendar import RemoteEvent
from fitness_calendar.calendar.mapping import (
    apply_time_changes,
    build_remote_body,
    normalize_times,
    remote_to_local,
    split_datetime,
)


class TestSplitDatetime:
    """Tests for splitting date-times into stored parts."""

    def test_drops_offset(self):
        assert split_datetime("2025-01-01T10:00:00Z") == ("2025-01-01", "10:00:00")
        assert split_datetime("2025-01-01T10:00:00+05:30") == ("2025-01-01", "10:00:00")

    def test_bare_date(self):
        assert split_datetime("2025-01-01") == ("2025-01-01", None)

    def test_minutes_only(self):
        assert split_datetime("2025-01-01T06:30") == ("2025-01-01", "06:30")

    def test_invalid(self):
        with pytest.raises(ValueError):
            split_datetime("tomorrow")


class TestNormalizeTimes:
    """Tests for resolving client input to (date, start_time, end_time)."""

    def test_date_with_wall_clock_times(self):
        assert normalize_times("2025-09-03", "18:00", "19:00") == (
            "2025-09-03",
            "18:00",
            "19:00",
        )

    def test_full_datetimes_supply_the_date(self):
        assert normalize_times(None, "2025-09-03T18:00:00", "2025-09-03T19:30:00") == (
            "2025-09-03",
            "18:00:00",
            "19:30:00",
        )

    def test_all_day_from_bare_start(self):
        assert normalize_times(None, "2025-09-03", None) == ("2025-09-03", None, None)

    def test_date_only(self):
        assert normalize_times("2025-09-03", None, None) == ("2025-09-03", None, None)

    def test_no_date_anywhere(self):
        with pytest.raises(ValueError):
            normalize_times(None, None, "19:00")

    @pytest.mark.parametrize(
        "date, start, end",
        [
            ("2025-09-03", "6pm", None),
            ("2025-09-03", "18:00", "7pm"),
            ("2025-09-03", "25:00", None),
            ("next friday", "18:00", None),
            ("2025-02-30", None, None),
        ],
    )
    def test_malformed_values_rejected(self, date, start, end):
        with pytest.raises(ValueError):
            normalize_times(date, start, end)


class TestApplyTimeChanges:
    """Tests for partial time updates."""

    current = ("2025-09-03", "18:00", "19:00")

    def test_absent_keys_keep_values(self):
        assert apply_time_changes(self.current, {"title": "x"}) == self.current

    def test_only_end_changes(self):
        assert apply_time_changes(self.current, {"end": "20:00"}) == (
            "2025-09-03",
            "18:00",
            "20:00",
        )

    def test_start_datetime_moves_date(self):
        result = apply_time_changes(self.current, {"start": "2025-09-05T07:00:00"})
        assert result == ("2025-09-05", "07:00:00", "19:00")

    def test_explicit_date_wins(self):
        result = apply_time_changes(
            self.current, {"start": "2025-09-05T07:00:00", "date": "2025-09-06"}
        )
        assert result[0] == "2025-09-06"

    def test_none_clears_time(self):
        assert apply_time_changes(self.current, {"start": None, "end": None}) == (
            "2025-09-03",
            None,
            None,
        )

    def test_malformed_start_rejected(self):
        with pytest.raises(ValueError, match="noon"):
            apply_time_changes(self.current, {"start": "noon"})

    def test_malformed_date_rejected(self):
        with pytest.raises(ValueError):
            apply_time_changes(self.current, {"date": "2025-13-01"})


class TestRemoteToLocal:
    """Tests for mapping Google events to local columns."""

    def test_timed_event(self):
        event = RemoteEvent.from_api(
            {
                "id": "g1",
                "summary": "Morning run",
                "description": "5k",
                "start": {"dateTime": "2025-09-03T06:30:00+05:30"},
                "end": {"dateTime": "2025-09-03T07:30:00+05:30"},
            }
        )

        assert remote_to_local(event) == {
            "remote_event_id": "g1",
            "title": "Morning run",
            "description": "5k",
            "date": "2025-09-03",
            "start_time": "06:30:00",
            "end_time": "07:30:00",
        }

    def test_all_day_event(self):
        event = RemoteEvent.from_api(
            {
                "id": "g2",
                "summary": "Rest day",
                "start": {"date": "2025-09-04"},
                "end": {"date": "2025-09-05"},
            }
        )

        row = remote_to_local(event)
        assert row["date"] == "2025-09-04"
        assert row["start_time"] is None
        assert row["end_time"] is None

    def test_untitled_event(self):
        event = RemoteEvent.from_api({"id": "g3", "start": {"date": "2025-09-04"}})
        assert remote_to_local(event)["title"] == "(No title)"


class TestBuildRemoteBody:
    """Tests for Google event bodies."""

    def test_timed_event_uses_configured_zone(self):
        body = build_remote_body(
            "Leg day", "Squats", "2025-09-03", "18:00", "19:00", "Asia/Colombo"
        )

        assert body["summary"] == "Leg day"
        assert body["description"] == "Squats"
        assert body["start"] == {
            "dateTime": "2025-09-03T18:00:00+05:30",
            "timeZone": "Asia/Colombo",
        }
        assert body["end"]["dateTime"] == "2025-09-03T19:00:00+05:30"

    def test_missing_end_lasts_one_hour(self):
        body = build_remote_body("Run", None, "2025-09-03", "06:30", None, "Asia/Colombo")

        assert body["end"]["dateTime"] == "2025-09-03T07:30:00+05:30"
        assert body["description"] == ""

    def test_end_before_start_rolls_over(self):
        body = build_remote_body("Night hike", None, "2025-09-03", "23:00", "01:00", "UTC")

        assert body["end"]["dateTime"] == "2025-09-04T01:00:00+00:00"

    def test_all_day_end_is_exclusive(self):
        body = build_remote_body("Rest day", None, "2025-12-31", None, None, "UTC")

        assert body["start"] == {"date": "2025-12-31"}
        assert body["end"] == {"date": "2026-01-01"}
