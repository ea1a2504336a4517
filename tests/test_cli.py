"""
Tests for the command line interface in --mock mode.
"""

import json

import pytest
from typer.testing import CliRunner

from techbooker import __version__
from techbooker.cli.app import app
from techbooker.settings_store import SETTINGS_KEY

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "supabase:\n"
        "  url: http://localhost:54321\n"
        "  anon_key: test-anon-key\n"
        "timezone: Asia/Jerusalem\n"
        f"settings_file: '{tmp_path / 'settings.json'}'\n"
        f"session_file: '{tmp_path / 'session.json'}'\n",
        encoding="utf-8",
    )
    return path


def invoke(config_file, *args, input=None):
    return runner.invoke(app, ["--config", str(config_file), "--mock", *args], input=input)


def stored_settings(config_file):
    path = config_file.parent / "settings.json"
    return json.loads(path.read_text(encoding="utf-8"))[SETTINGS_KEY]


class TestCli:
    """Tests for CLI commands."""

    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_slots_for_free_day(self, config_file):
        result = invoke(config_file, "slots", "2099-01-05")

        assert result.exit_code == 0
        assert "12 free time slot(s)" in result.output
        assert "09:00" in result.output
        assert "20:00" in result.output

    def test_slots_for_past_day(self, config_file):
        result = invoke(config_file, "slots", "2000-01-03")

        assert result.exit_code == 0
        assert "in the past" in result.output

    def test_slots_bad_date(self, config_file):
        result = invoke(config_file, "slots", "05/01/2099")

        assert result.exit_code != 0

    def test_disabled_weekday_blocks_slots(self, config_file):
        # 2099-01-03 is a Saturday
        assert invoke(config_file, "settings", "disable-weekday", "6").exit_code == 0

        result = invoke(config_file, "slots", "2099-01-03")

        assert "weekday" in result.output
        assert stored_settings(config_file)["disabledWeekdays"] == [6]

        assert invoke(config_file, "settings", "enable-weekday", "6").exit_code == 0
        assert stored_settings(config_file)["disabledWeekdays"] == []

    def test_disable_and_enable_date(self, config_file):
        assert invoke(config_file, "settings", "disable-date", "10/01/2099").exit_code == 0
        assert stored_settings(config_file)["disabledDates"] == ["2099-01-10"]

        assert invoke(config_file, "settings", "enable-date", "10/01/2099").exit_code == 0
        assert stored_settings(config_file)["disabledDates"] == []

    def test_disable_invalid_date(self, config_file):
        result = invoke(config_file, "settings", "disable-date", "31/02/2099")

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_settings_set_and_show(self, config_file):
        result = invoke(
            config_file, "settings", "set",
            "--min-interval", "2", "--work-start", "8:00", "--work-end", "18:00",
            "--max-per-day", "4", "--no-sms", "--first-day", "sunday",
        )
        assert result.exit_code == 0

        stored = stored_settings(config_file)
        assert stored["minIntervalHours"] == 2
        assert stored["workStartTime"] == "08:00"
        assert stored["workEndTime"] == "18:00"
        assert stored["maxBookingsPerDay"] == 4
        assert stored["sendSMS"] is False
        assert stored["firstDayOfWeek"] == 0

        assert invoke(config_file, "settings", "set", "--max-per-day", "0").exit_code == 0
        assert stored_settings(config_file)["maxBookingsPerDay"] is None

        shown = invoke(config_file, "settings", "show")
        assert shown.exit_code == 0
        assert "08:00 - 18:00" in shown.output
        assert "no limit" in shown.output

    def test_settings_set_rejects_inverted_hours(self, config_file):
        result = invoke(config_file, "settings", "set", "--work-start", "18:00", "--work-end", "10:00")

        assert result.exit_code == 1

    def test_book_with_all_options(self, config_file):
        result = invoke(
            config_file, "book",
            "--first-name", "Dana", "--last-name", "Levi", "--phone", "050-123-4567",
            "--address", "Herzl 1", "--os", "linux", "--date", "2099-01-05", "--time", "10:00",
        )

        assert result.exit_code == 0
        assert "Booking created" in result.output
        assert "05/01/2099 10:00" in result.output
        assert "Confirmation SMS sent" in result.output

    def test_book_rejects_time_between_slots(self, config_file):
        result = invoke(
            config_file, "book",
            "--first-name", "Dana", "--last-name", "Levi", "--phone", "050",
            "--address", "Herzl 1", "--os", "linux", "--date", "2099-01-05", "--time", "10:30",
        )

        assert result.exit_code == 1
        assert "no longer available" in result.output

    def test_book_prompts_for_time(self, config_file):
        result = invoke(
            config_file, "book",
            "--first-name", "Dana", "--last-name", "Levi", "--phone", "050",
            "--address", "Herzl 1", "--os", "windows", "--date", "2099-01-05",
            input="14:00\n",
        )

        assert result.exit_code == 0
        assert "Free times: 09:00" in result.output
        assert "05/01/2099 14:00" in result.output

    def test_bookings_list(self, config_file):
        result = invoke(config_file, "bookings", "--sort", "city", "--desc")

        assert result.exit_code == 0
        assert "Bookings" in result.output

    def test_bookings_bad_sort(self, config_file):
        result = invoke(config_file, "bookings", "--sort", "password")

        assert result.exit_code == 1
        assert "Cannot sort" in result.output

    def test_edit_unknown_booking(self, config_file):
        result = invoke(config_file, "edit", "does-not-exist", "comments", "hi")

        assert result.exit_code == 1
        assert "No booking matches" in result.output

    def test_calendar(self, config_file):
        result = invoke(config_file, "calendar", "--month", "2099-01")

        assert result.exit_code == 0
        assert "January 2099" in result.output

    def test_missing_config_outside_mock(self, tmp_path):
        result = runner.invoke(app, ["--config", str(tmp_path / "nope.yaml"), "slots", "2099-01-05"])

        assert result.exit_code == 1
        assert "Config file not found" in result.output
