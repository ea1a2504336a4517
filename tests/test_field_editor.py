"""
Tests for the edit-then-commit field tracker and staff input parsing.
"""

from datetime import date

import pendulum
import pytest

from techbooker.domain.exceptions import BookingStoreError, InvalidFieldValue
from techbooker.domain.field_editor import (
    EditableField,
    FieldState,
    format_appointment,
    format_day_month_year,
    parse_appointment_input,
    parse_day_month_year,
)

TZ = "Asia/Jerusalem"


def parse_int(raw):
    try:
        return int(raw)
    except ValueError as exc:
        raise InvalidFieldValue(str(exc)) from exc


class TestEditableField:
    """Tests for the field state machine."""

    def test_edit_then_commit(self):
        field = EditableField("comments", "old")
        written = []

        field.edit("new")
        assert field.state is FieldState.DIRTY
        assert field.value == "new"

        assert field.commit(str, written.append) is True
        assert field.state is FieldState.CLEAN
        assert field.value == "new"
        assert written == ["new"]

    def test_invalid_input_reverts_without_writing(self):
        field = EditableField("count", 3)
        written = []

        field.edit("three")
        assert field.commit(parse_int, written.append) is False

        assert field.state is FieldState.REVERTED
        assert field.value == 3
        assert written == []

    def test_failed_write_reverts_and_raises(self):
        field = EditableField("count", 3)

        def failing_write(value):
            raise BookingStoreError("backend down")

        field.edit("4")
        with pytest.raises(BookingStoreError):
            field.commit(parse_int, failing_write)

        assert field.state is FieldState.REVERTED
        assert field.value == 3

    def test_commit_without_edit_is_noop(self):
        field = EditableField("comments", "old")

        assert field.commit(str, lambda value: pytest.fail("should not write")) is False
        assert field.state is FieldState.CLEAN


class TestParseDayMonthYear:
    """Tests for dd/mm/yyyy parsing."""

    @pytest.mark.parametrize("text,expected", [
        ("04/03/2025", date(2025, 3, 4)),
        ("4/3/2025", date(2025, 3, 4)),
        (" 29/02/2024 ", date(2024, 2, 29)),
        ("2025-03-04", date(2025, 3, 4)),
    ])
    def test_valid(self, text, expected):
        assert parse_day_month_year(text) == expected

    @pytest.mark.parametrize("text", ["", "31/02/2025", "03-04-2025", "01/01/1800", "1/13/2025"])
    def test_invalid(self, text):
        with pytest.raises(InvalidFieldValue):
            parse_day_month_year(text)

    def test_format_pads(self):
        assert format_day_month_year(date(2025, 3, 4)) == "04/03/2025"


class TestParseAppointmentInput:
    """Tests for appointment input parsing."""

    def test_day_month_year_time_in_local_zone(self):
        parsed = parse_appointment_input("04/03/2025 10:00", TZ)

        assert parsed == pendulum.parse("2025-03-04T08:00:00Z")

    def test_iso_fallback(self):
        parsed = parse_appointment_input("2025-03-04T10:00:00+02:00", TZ)

        assert parsed == pendulum.parse("2025-03-04T08:00:00Z")

    @pytest.mark.parametrize("text", ["", "   ", "04/03/2025 25:00", "31/02/2025 10:00", "tomorrow-ish"])
    def test_invalid(self, text):
        with pytest.raises(InvalidFieldValue):
            parse_appointment_input(text, TZ)

    def test_format_appointment_round_trip(self):
        instant = pendulum.parse("2025-03-04T08:00:00Z")

        assert format_appointment(instant, TZ) == "04/03/2025 10:00"
