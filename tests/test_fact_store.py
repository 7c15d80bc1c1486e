"""Tests for the structured fact store adapter."""

import pytest
from datetime import date

from errors import StoreUnavailableError
from retrieval.fact_store import SQLiteFactStore
from schemas.facts import DateRange

from conftest import TODAY


class TestSQLiteFactStore:
    """Test read-only lookups over the care records."""

    def test_list_patients_active_only(self, fact_store):
        """Test that patients are listed by name."""
        patients = fact_store.list_patients()

        assert [p.name for p in patients] == ["Aurora", "Basilio"]
        assert patients[0].relationship == "mother"

    def test_medications_active_and_ordered(self, fact_store):
        """Test that inactive medications are excluded and rows are ordered by name."""
        medications = fact_store.list_medications("aurora")

        assert [m.name for m in medications] == ["Donepezil", "Lisinopril"]

    def test_medication_missing_fields_use_placeholders(self, fact_store):
        """Test defaults for missing pharmacy and RX number."""
        lisinopril = fact_store.list_medications("aurora")[1]

        assert lisinopril.pharmacy == "Unknown"
        assert lisinopril.rx_number == "N/A"
        assert lisinopril.prescribing_doctor == "Dr. Patel"

    def test_upcoming_appointments_filtered_by_start_date(self, fact_store):
        """Test that past appointments are excluded when a start date is given."""
        upcoming = fact_store.list_appointments("aurora", start_date=TODAY)
        everything = fact_store.list_appointments("aurora")

        assert len(upcoming) == 2
        assert len(everything) == 3
        assert upcoming[0].appointment_date < upcoming[1].appointment_date

    def test_no_rows_is_empty_list(self, fact_store):
        """Test that an empty result is not an error."""
        assert fact_store.list_appointments("basilio", start_date=TODAY) == []
        assert fact_store.list_medications("nobody") == []

    def test_vitals_range_and_type(self, fact_store):
        """Test vitals filtering by date range and measurement type."""
        week = DateRange(start=date(2026, 3, 3), end=TODAY, label="the last 7 days")

        readings = fact_store.list_vitals("aurora", date_range=week)
        pressure = fact_store.list_vitals("aurora", date_range=week, measurement_type="blood_pressure")

        assert len(readings) == 3
        assert len(pressure) == 2
        assert pressure[0].measured_at > pressure[1].measured_at
        assert pressure[0].systolic == 132

    def test_missing_tables_raise_store_unavailable(self, broken_fact_store):
        """Test that read failures are infrastructure errors with a plain message."""
        with pytest.raises(StoreUnavailableError) as exc_info:
            broken_fact_store.list_medications("aurora")

        assert exc_info.value.retryable is True
        assert "could not check medication records" in exc_info.value.user_message

    def test_missing_database_is_not_created(self, tmp_path):
        """Test that a wrong path fails instead of creating an empty database."""
        db_path = tmp_path / "missing.db"
        store = SQLiteFactStore(db_path=str(db_path))

        with pytest.raises(StoreUnavailableError):
            store.list_patients()

        assert not db_path.exists()
