"""
Tests for the Typer CLI against a copy of the sample data.
"""

import json
import shutil

import pytest
from typer.testing import CliRunner

from bookingengine.cli.app import SAMPLE_DATA, app

TENANT = "studio@example.com"

runner = CliRunner()


@pytest.fixture
def data_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    target = tmp_path / "data.json"
    shutil.copy(SAMPLE_DATA, target)
    return target


def _invoke(data_file, *args):
    return runner.invoke(app, ["--data", str(data_file), *args])


def _stored_booking(data_file, booking_id):
    data = json.loads(data_file.read_text(encoding="utf-8"))
    return next(b for b in data["bookings"] if b["id"] == booking_id)


class TestReadCommands:
    """Availability queries."""

    def test_slots(self, data_file):
        result = _invoke(data_file, "slots", "emp-anna", "2024-11-25", "--duration", "30")

        assert result.exit_code == 0
        assert "free slot(s)" in result.output
        assert "09:00" in result.output
        assert "16:30" in result.output

    def test_slots_non_working_day(self, data_file):
        result = _invoke(data_file, "slots", "emp-anna", "2024-11-24")

        assert result.exit_code == 0
        assert "No free" in result.output

    def test_slots_unknown_staff(self, data_file):
        result = _invoke(data_file, "slots", "emp-nobody", "2024-11-25")

        assert result.exit_code == 1
        assert "not_found" in result.output

    def test_check_conflict(self, data_file):
        result = _invoke(data_file, "check", "emp-anna", "2024-11-25", "14:15", "-d", "30")

        assert result.exit_code == 0
        assert "not available" in result.output
        assert "bk-1001" in result.output
        assert "Nearest free times" in result.output

    def test_check_available(self, data_file):
        result = _invoke(data_file, "check", "emp-anna", "2024-11-25", "09:00")

        assert result.exit_code == 0
        assert "is available" in result.output

    def test_staff(self, data_file):
        """Anna is busy with a coloring at 10:00, Ben is free."""
        result = _invoke(data_file, "staff", "haircut", "2024-11-25", "10:00", "--tenant", TENANT)

        assert result.exit_code == 0
        assert "emp-ben" in result.output
        assert "emp-anna" not in result.output

    def test_staff_slots(self, data_file):
        result = _invoke(data_file, "staff-slots", "emp-ben", "haircut", "2024-11-25", "-t", TENANT)

        assert result.exit_code == 0
        assert "45 min" in result.output
        assert "10:00" in result.output

    def test_bookings(self, data_file):
        result = _invoke(data_file, "bookings", "2024-11-25", "--tenant", TENANT, "--status", "confirmed")

        assert result.exit_code == 0
        assert "bk-1001" in result.output
        assert "bk-1002" not in result.output

    def test_tenant_slots(self, data_file):
        """Opening hours 09:00-18:00; Anna's 14:00 and 10:00 bookings block the whole tenant."""
        result = _invoke(data_file, "tenant-slots", "2024-11-25", "-d", "30", "-t", TENANT)

        assert result.exit_code == 0
        assert "09:00" in result.output
        assert "17:30" in result.output
        assert "14:00" not in result.output
        assert "10:30" not in result.output

    def test_tenant_check_conflict(self, data_file):
        result = _invoke(data_file, "tenant-check", "2024-11-25", "14:15", "-d", "30", "-t", TENANT)

        assert result.exit_code == 0
        assert "not available" in result.output
        assert "bk-1001" in result.output

    def test_tenant_check_free(self, data_file):
        result = _invoke(data_file, "tenant-check", "2024-11-25", "16:00", "-t", TENANT)

        assert result.exit_code == 0
        assert "is free" in result.output

    def test_bookings_by_status_across_dates(self, data_file):
        result = _invoke(data_file, "bookings", "--status", "pending", "--tenant", TENANT)

        assert result.exit_code == 0
        assert "bk-1002" in result.output
        assert "bk-1001" not in result.output
        assert "2024-11-25" in result.output

    def test_default_tenant_from_config(self, data_file, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(f"default_tenant: {TENANT}\n", encoding="utf-8")

        result = runner.invoke(
            app, ["--config", str(config_file), "--data", str(data_file), "bookings", "2024-11-25"]
        )

        assert result.exit_code == 0
        assert "bk-1002" in result.output

    def test_missing_tenant(self, data_file):
        result = _invoke(data_file, "bookings", "2024-11-25")

        assert result.exit_code == 1
        assert "No tenant given" in result.output


class TestWriteCommands:
    """Booking creation and status changes persist to the data file."""

    def test_book(self, data_file):
        result = _invoke(
            data_file,
            "book", "haircut", "2024-11-25", "09:00",
            "--staff", "emp-anna",
            "--client-name", "Max",
            "--client-phone", "0151 000000",
            "--tenant", TENANT,
        )

        assert result.exit_code == 0
        assert "Booking created" in result.output
        bookings = json.loads(data_file.read_text(encoding="utf-8"))["bookings"]
        created = [b for b in bookings if b["clientName"] == "Max"]
        assert len(created) == 1
        assert created[0]["startTime"] == "09:00"
        assert created[0]["endTime"] == "09:30"
        assert created[0]["status"] == "pending"

    def test_book_conflict(self, data_file):
        result = _invoke(
            data_file,
            "book", "haircut", "2024-11-25", "14:15",
            "--staff", "emp-anna",
            "--client-name", "Max",
            "--client-phone", "0151",
            "--tenant", TENANT,
        )

        assert result.exit_code == 1
        assert "scheduling_conflict" in result.output
        assert len(json.loads(data_file.read_text(encoding="utf-8"))["bookings"]) == 3

    def test_book_invalid_time(self, data_file):
        result = _invoke(
            data_file,
            "book", "haircut", "2024-11-25", "9 o'clock",
            "--client-name", "Max",
            "--client-phone", "0151",
            "--tenant", TENANT,
        )

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_cancel(self, data_file):
        result = _invoke(data_file, "cancel", "bk-1002", "--tenant", TENANT)

        assert result.exit_code == 0
        assert "cancelled" in result.output
        assert _stored_booking(data_file, "bk-1002")["status"] == "cancelled"

    def test_confirm(self, data_file):
        result = _invoke(data_file, "confirm", "bk-1002", "--tenant", TENANT)

        assert result.exit_code == 0
        assert _stored_booking(data_file, "bk-1002")["status"] == "confirmed"

    def test_invalid_transition(self, data_file):
        result = _invoke(data_file, "complete", "bk-1002", "--tenant", TENANT)

        assert result.exit_code == 1
        assert "invalid_transition" in result.output
        assert _stored_booking(data_file, "bk-1002")["status"] == "pending"


class TestGlobalOptions:
    def test_missing_data_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        result = runner.invoke(app, ["--data", str(tmp_path / "missing.json"), "slots", "emp-anna", "2024-11-25"])

        assert result.exit_code == 1
        assert "Data file not found" in result.output

    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "bookingengine" in result.output
