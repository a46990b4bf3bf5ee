from datetime import date, datetime

import pytest

from clinic.services.slots import (
    filter_future_slots, format_time_label, generate_slots, is_valid_time_label, parse_time_label,
)


class TestTimeLabels:
    """Test HH:MM parsing and formatting."""

    @pytest.mark.parametrize("label,minutes", [("00:00", 0), ("09:30", 570), ("23:59", 1439)])
    def test_parse(self, label, minutes):
        assert parse_time_label(label) == minutes
        assert format_time_label(minutes) == label

    @pytest.mark.parametrize("label", ["9:30", "24:00", "12:60", "noon", "", None])
    def test_invalid_labels_rejected(self, label):
        assert not is_valid_time_label(label)
        with pytest.raises(ValueError):
            parse_time_label(label)

    def test_format_outside_day(self):
        with pytest.raises(ValueError):
            format_time_label(24 * 60)


class TestGenerateSlots:
    """Test slot generation for a working window."""

    def test_half_hour_slots(self):
        assert generate_slots("09:00", "10:00", 30) == ["09:00", "09:30"]

    def test_stops_strictly_before_end(self):
        assert generate_slots("09:00", "10:00", 25) == ["09:00", "09:25", "09:50"]
        assert generate_slots("09:00", "09:45", 15) == ["09:00", "09:15", "09:30"]

    def test_break_window_excluded(self):
        slots = generate_slots("09:00", "13:00", 60, "11:00", "12:00")
        assert slots == ["09:00", "10:00", "12:00"]

    def test_break_start_is_inclusive_and_end_exclusive(self):
        slots = generate_slots("09:00", "11:00", 30, "09:30", "10:00")
        assert "09:30" not in slots
        assert "10:00" in slots

    def test_half_configured_break_is_ignored(self):
        assert generate_slots("09:00", "10:00", 30, "09:30", None) == ["09:00", "09:30"]

    def test_empty_window(self):
        assert generate_slots("10:00", "10:00", 15) == []
        assert generate_slots("11:00", "10:00", 15) == []

    @pytest.mark.parametrize("duration", [0, -15, None])
    def test_non_positive_duration_rejected(self, duration):
        with pytest.raises(ValueError):
            generate_slots("09:00", "10:00", duration)

    @pytest.mark.parametrize("start,end,duration", [
        ("08:00", "17:00", 15),
        ("09:10", "12:35", 20),
        ("00:00", "23:59", 45),
        ("13:00", "13:07", 10),
    ])
    def test_slots_are_evenly_spaced_inside_window(self, start, end, duration):
        slots = generate_slots(start, end, duration)
        minutes = [parse_time_label(label) for label in slots]

        assert minutes[0] == parse_time_label(start)
        assert all(value < parse_time_label(end) for value in minutes)
        assert all(b - a == duration for a, b in zip(minutes, minutes[1:]))
        # The next step would reach or pass the end
        assert minutes[-1] + duration >= parse_time_label(end)


class TestFilterFutureSlots:
    """Test dropping elapsed slots on the current day."""

    slots = ["09:00", "09:30", "10:00"]

    def test_today_keeps_only_strictly_future(self):
        now = datetime(2026, 1, 24, 9, 30)
        assert filter_future_slots(self.slots, date(2026, 1, 24), now) == ["10:00"]

    def test_other_day_unchanged(self):
        now = datetime(2026, 1, 24, 9, 30)
        assert filter_future_slots(self.slots, date(2026, 1, 25), now) == self.slots

    def test_end_of_day_leaves_nothing(self):
        now = datetime(2026, 1, 24, 23, 0)
        assert filter_future_slots(self.slots, date(2026, 1, 24), now) == []
