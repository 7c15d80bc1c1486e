"""Create the clinical record tables and load a demo household."""

import sqlite3
import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


FACT_SCHEMA = """
CREATE TABLE IF NOT EXISTS patients (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    date_of_birth TEXT,
    relationship TEXT,
    gender TEXT,
    primary_doctor TEXT,
    notes TEXT,
    active INTEGER DEFAULT 1
);

CREATE TABLE IF NOT EXISTS medications (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    name TEXT NOT NULL,
    generic_name TEXT,
    dosage TEXT NOT NULL,
    frequency TEXT NOT NULL,
    prescribing_doctor TEXT,
    pharmacy TEXT,
    rx_number TEXT,
    notes TEXT,
    active INTEGER DEFAULT 1,
    FOREIGN KEY (patient_id) REFERENCES patients(id)
);

CREATE TABLE IF NOT EXISTS appointments (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    appointment_date TEXT NOT NULL,
    appointment_time TEXT,
    appointment_type TEXT,
    location TEXT,
    preparation_notes TEXT,
    status TEXT DEFAULT 'scheduled',
    FOREIGN KEY (patient_id) REFERENCES patients(id)
);

CREATE TABLE IF NOT EXISTS vitals (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    measurement_type TEXT NOT NULL,
    systolic INTEGER,
    diastolic INTEGER,
    value REAL,
    unit TEXT,
    measured_at TEXT NOT NULL,
    notes TEXT,
    FOREIGN KEY (patient_id) REFERENCES patients(id)
);
"""


def create_fact_tables(conn: sqlite3.Connection):
    """Create patients, medications, appointments and vitals tables."""
    conn.executescript(FACT_SCHEMA)


def seed_demo_household(db_path: str, today: Optional[date] = None) -> int:
    """
    Load two patients with medications, appointments and vitals.

    Aurora has upcoming appointments; Basilio has none, which exercises the
    explicit empty answer. Dates are relative to `today`.

    Args:
        db_path: SQLite database path
        today: Reference date (default: date.today())

    Returns:
        Number of rows inserted
    """
    today = today or date.today()
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    def day(offset: int) -> str:
        return (today + timedelta(days=offset)).isoformat()

    patients = [
        ("aurora", "Aurora", "1946-03-14", "mother", "female", "Dr. Patel", None, 1),
        ("basilio", "Basilio", "1943-09-02", "father", "male", "Dr. Nguyen", None, 1),
    ]
    medications = [
        ("med-aurora-1", "aurora", "Donepezil", "donepezil hydrochloride", "10 mg", "once daily at bedtime",
         "Dr. Patel", "Corner Pharmacy", "RX-448201", "Take with water", 1),
        ("med-aurora-2", "aurora", "Lisinopril", None, "20 mg", "once daily",
         "Dr. Patel", None, None, None, 1),
        ("med-aurora-3", "aurora", "Vitamin D3", "cholecalciferol", "1000 IU", "once daily",
         None, None, None, None, 0),
        ("med-basilio-1", "basilio", "Metformin", "metformin hydrochloride", "500 mg", "twice daily with meals",
         "Dr. Nguyen", "Corner Pharmacy", "RX-551930", None, 1),
    ]
    appointments = [
        ("apt-aurora-1", "aurora", day(3), "10:30", "follow_up", "Riverside Memory Clinic",
         "Bring the medication list", "scheduled"),
        ("apt-aurora-2", "aurora", day(17), "14:00", "routine", "Dr. Patel, Main St Family Practice",
         None, "scheduled"),
        ("apt-aurora-0", "aurora", day(-10), "09:00", "routine", "Dr. Patel, Main St Family Practice",
         None, "completed"),
    ]
    vitals = [
        ("vit-aurora-1", "aurora", "blood_pressure", 132, 84, None, "mmHg", f"{day(-1)}T08:15:00", None),
        ("vit-aurora-2", "aurora", "blood_pressure", 128, 80, None, "mmHg", f"{day(-4)}T08:05:00", None),
        ("vit-aurora-3", "aurora", "weight", None, None, 61.2, "kg", f"{day(-4)}T08:10:00", None),
        ("vit-basilio-1", "basilio", "glucose", None, None, 142.0, "mg/dL", f"{day(-2)}T07:30:00", "Before breakfast"),
        ("vit-basilio-2", "basilio", "glucose", None, None, 118.0, "mg/dL", f"{day(-40)}T07:40:00", None),
    ]

    conn = sqlite3.connect(db_path)
    try:
        create_fact_tables(conn)
        conn.executemany("INSERT OR REPLACE INTO patients VALUES (?, ?, ?, ?, ?, ?, ?, ?)", patients)
        conn.executemany(
            "INSERT OR REPLACE INTO medications VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)", medications
        )
        conn.executemany("INSERT OR REPLACE INTO appointments VALUES (?, ?, ?, ?, ?, ?, ?, ?)", appointments)
        conn.executemany("INSERT OR REPLACE INTO vitals VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)", vitals)
        conn.commit()
    finally:
        conn.close()

    count = len(patients) + len(medications) + len(appointments) + len(vitals)
    logger.info(f"Seeded {count} demo rows into {db_path}")
    return count


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    seed_demo_household("data/conversations.db")
