"""Structured clinical fact rows (read-only to the engine)."""

from datetime import date
from typing import Optional
from pydantic import BaseModel, Field


class Patient(BaseModel):
    """A care subject."""
    id: str
    name: str
    relationship: Optional[str] = None  # 'mother', 'father', 'spouse', 'self', ...
    gender: Optional[str] = None
    date_of_birth: Optional[str] = None


class Medication(BaseModel):
    """Active medication row."""
    id: str
    patient_id: str
    name: str
    generic_name: Optional[str] = None
    dosage: str
    frequency: str
    prescribing_doctor: str = "Unknown"
    pharmacy: str = "Unknown"
    rx_number: str = "N/A"
    notes: Optional[str] = None


class Appointment(BaseModel):
    """Appointment row."""
    id: str
    patient_id: str
    appointment_date: str  # ISO date
    appointment_time: Optional[str] = None
    appointment_type: Optional[str] = None
    location: Optional[str] = None
    status: str = "scheduled"
    preparation_notes: Optional[str] = None


class VitalReading(BaseModel):
    """Single vitals measurement."""
    id: str
    patient_id: str
    measurement_type: str  # 'blood_pressure', 'weight', 'heart_rate', 'glucose', ...
    systolic: Optional[int] = None
    diastolic: Optional[int] = None
    value: Optional[float] = None
    unit: Optional[str] = None
    measured_at: str
    notes: Optional[str] = None


class DateRange(BaseModel):
    """Inclusive date range for vitals queries."""
    start: Optional[date] = None
    end: Optional[date] = None
    label: str = Field("", description="Human readable description, e.g. 'last 7 days'")
