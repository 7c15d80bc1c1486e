"""Read-only adapter over the clinical record tables."""

import sqlite3
import logging
from datetime import date
from pathlib import Path
from typing import Optional, List

from errors import StoreUnavailableError
from schemas.facts import Patient, Medication, Appointment, VitalReading, DateRange

logger = logging.getLogger(__name__)


class SQLiteFactStore:
    """
    Structured fact store adapter.

    Pure lookups over patients, medications, appointments and vitals owned by
    the surrounding application. Empty results are returned as empty lists;
    exceptions are reserved for connectivity and integrity failures.
    """

    def __init__(self, db_path: str = "data/conversations.db"):
        """
        Initialize fact store.

        Args:
            db_path: Path to the SQLite database holding the clinical tables
        """
        self.db_path = Path(db_path)

    def _get_connection(self) -> sqlite3.Connection:
        """Get read-only connection with row factory (a missing file is an error, never created)."""
        conn = sqlite3.connect(f"file:{self.db_path}?mode=ro", uri=True)
        conn.row_factory = sqlite3.Row
        return conn

    def _query(self, sql: str, params: tuple, what: str) -> List[sqlite3.Row]:
        try:
            conn = self._get_connection()
            try:
                return conn.execute(sql, params).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"Fact store read failed ({what}): {e}")
            raise StoreUnavailableError(
                f"Could not read {what}: {e}",
                user_message=f"I could not check {what} right now. Please try again shortly."
            ) from e

    def list_patients(self) -> List[Patient]:
        """List active patients ordered by name."""
        rows = self._query(
            """
            SELECT id, name, relationship, gender, date_of_birth
            FROM patients
            WHERE active = 1
            ORDER BY name ASC
            """,
            (),
            "patient records"
        )
        return [self._row_to_patient(row) for row in rows]

    def get_patient(self, patient_id: str) -> Optional[Patient]:
        """Get an active patient by id."""
        rows = self._query(
            """
            SELECT id, name, relationship, gender, date_of_birth
            FROM patients
            WHERE id = ? AND active = 1
            """,
            (patient_id,),
            "patient records"
        )
        return self._row_to_patient(rows[0]) if rows else None

    def list_medications(self, patient_id: str) -> List[Medication]:
        """
        List active medications for a patient.

        Args:
            patient_id: Patient ID

        Returns:
            Medications ordered by name (empty list if none)
        """
        rows = self._query(
            """
            SELECT id, patient_id, name, generic_name, dosage, frequency,
                   prescribing_doctor, pharmacy, rx_number, notes
            FROM medications
            WHERE patient_id = ? AND active = 1
            ORDER BY name ASC, id ASC
            """,
            (patient_id,),
            "medication records"
        )
        return [
            Medication(
                id=row["id"],
                patient_id=row["patient_id"],
                name=row["name"],
                generic_name=row["generic_name"] or None,
                dosage=row["dosage"],
                frequency=row["frequency"],
                prescribing_doctor=row["prescribing_doctor"] or "Unknown",
                pharmacy=row["pharmacy"] or "Unknown",
                rx_number=row["rx_number"] or "N/A",
                notes=row["notes"] or None,
            )
            for row in rows
        ]

    def list_appointments(
        self,
        patient_id: str,
        start_date: Optional[date] = None
    ) -> List[Appointment]:
        """
        List appointments for a patient.

        Args:
            patient_id: Patient ID
            start_date: Only include appointments on or after this date

        Returns:
            Appointments ordered by date and time (empty list if none)
        """
        sql = """
            SELECT id, patient_id, appointment_date, appointment_time, appointment_type,
                   location, status, preparation_notes
            FROM appointments
            WHERE patient_id = ?
        """
        params: list = [patient_id]
        if start_date is not None:
            sql += " AND appointment_date >= ?"
            params.append(start_date.isoformat())
        sql += " ORDER BY appointment_date ASC, appointment_time ASC, id ASC"

        rows = self._query(sql, tuple(params), "appointment records")
        return [
            Appointment(
                id=row["id"],
                patient_id=row["patient_id"],
                appointment_date=row["appointment_date"],
                appointment_time=row["appointment_time"] or None,
                appointment_type=row["appointment_type"] or None,
                location=row["location"] or None,
                status=row["status"] or "scheduled",
                preparation_notes=row["preparation_notes"] or None,
            )
            for row in rows
        ]

    def list_vitals(
        self,
        patient_id: str,
        date_range: Optional[DateRange] = None,
        measurement_type: Optional[str] = None
    ) -> List[VitalReading]:
        """
        List vitals readings for a patient, newest first.

        Args:
            patient_id: Patient ID
            date_range: Optional inclusive date range on measured_at
            measurement_type: Optional filter ('blood_pressure', 'weight', ...)

        Returns:
            Vitals readings (empty list if none)
        """
        sql = """
            SELECT id, patient_id, measurement_type, systolic, diastolic, value, unit,
                   measured_at, notes
            FROM vitals
            WHERE patient_id = ?
        """
        params: list = [patient_id]
        if date_range and date_range.start:
            sql += " AND date(measured_at) >= ?"
            params.append(date_range.start.isoformat())
        if date_range and date_range.end:
            sql += " AND date(measured_at) <= ?"
            params.append(date_range.end.isoformat())
        if measurement_type:
            sql += " AND measurement_type = ?"
            params.append(measurement_type)
        sql += " ORDER BY measured_at DESC, id ASC"

        rows = self._query(sql, tuple(params), "vitals records")
        return [
            VitalReading(
                id=row["id"],
                patient_id=row["patient_id"],
                measurement_type=row["measurement_type"],
                systolic=row["systolic"],
                diastolic=row["diastolic"],
                value=row["value"],
                unit=row["unit"] or None,
                measured_at=row["measured_at"],
                notes=row["notes"] or None,
            )
            for row in rows
        ]

    @staticmethod
    def _row_to_patient(row: sqlite3.Row) -> Patient:
        return Patient(
            id=row["id"],
            name=row["name"],
            relationship=row["relationship"] or None,
            gender=row["gender"] or None,
            date_of_birth=row["date_of_birth"] or None,
        )
