"""Fact answer composer: literal answers rendered from store rows."""

from typing import List, Optional

from schemas.facts import Patient, Medication, Appointment, VitalReading, DateRange
from schemas.responses import QueryDomain


MEASUREMENT_LABELS = {
    "blood_pressure": "Blood pressure",
    "weight": "Weight",
    "glucose": "Blood glucose",
    "heart_rate": "Heart rate",
    "temperature": "Temperature",
    "oxygen": "Oxygen saturation",
}

DOMAIN_NOUNS = {
    QueryDomain.MEDICATIONS: "medications",
    QueryDomain.APPOINTMENTS: "appointments",
    QueryDomain.VITALS: "vitals",
}


class FactAnswerComposer:
    """
    Renders store rows as plain answers.

    Every sentence is built from row values. Nothing here is generated, and
    empty results are stated explicitly.
    """

    def compose_medications(self, patient: Patient, medications: List[Medication]) -> str:
        """Render a patient's active medications."""
        if not medications:
            return (
                f"{patient.name} has **NO active medications on record**.\n\n"
                "If a medication is missing, it can be added to the medication list."
            )

        count = len(medications)
        lines = [f"{patient.name} has **{count} active medication{'s' if count > 1 else ''}**:", ""]
        for idx, med in enumerate(medications, start=1):
            name = med.name
            if med.generic_name and med.generic_name.lower() != med.name.lower():
                name += f" ({med.generic_name})"
            lines.append(f"{idx}. **{name}**: {med.dosage}, {med.frequency}")
            lines.append(f"   • Prescribed by: {med.prescribing_doctor}")
            lines.append(f"   • Pharmacy: {med.pharmacy}")
            lines.append(f"   • RX number: {med.rx_number}")
            if med.notes:
                lines.append(f"   • Notes: {med.notes}")
            lines.append("")

        return "\n".join(lines).strip()

    def compose_appointments(self, patient: Patient, appointments: List[Appointment]) -> str:
        """Render a patient's upcoming appointments."""
        if not appointments:
            return (
                f"{patient.name} has **NO upcoming appointments scheduled**.\n\n"
                "There are currently no upcoming appointments in the records."
            )

        count = len(appointments)
        lines = [f"{patient.name} has **{count} upcoming appointment{'s' if count > 1 else ''}**:", ""]
        for idx, apt in enumerate(appointments, start=1):
            heading = f"{idx}. **{apt.appointment_date}**"
            if apt.appointment_time:
                heading += f" at {apt.appointment_time}"
            lines.append(heading)
            if apt.appointment_type:
                lines.append(f"   • Type: {apt.appointment_type}")
            if apt.location:
                lines.append(f"   • Location: {apt.location}")
            lines.append(f"   • Status: {apt.status}")
            if apt.preparation_notes:
                lines.append(f"   • Preparation: {apt.preparation_notes}")
            lines.append("")

        return "\n".join(lines).strip()

    def compose_vitals(
        self,
        patient: Patient,
        readings: List[VitalReading],
        date_range: DateRange,
        measurement_type: Optional[str] = None
    ) -> str:
        """Render vitals readings within a date range."""
        what = MEASUREMENT_LABELS.get(measurement_type, "vitals").lower() if measurement_type else "vitals"
        period = date_range.label or "the selected period"

        if not readings:
            return f"{patient.name} has **NO {what} readings recorded** for {period}."

        count = len(readings)
        lines = [
            f"{patient.name} has **{count} {what} reading{'s' if count > 1 else ''}** for {period}:",
            "",
        ]
        for reading in readings:
            label = MEASUREMENT_LABELS.get(reading.measurement_type, reading.measurement_type)
            line = f"• {reading.measured_at}: {label} {self._format_value(reading)}"
            if reading.notes:
                line += f" ({reading.notes})"
            lines.append(line)

        return "\n".join(lines).strip()

    def compose_clarification(self, domain: QueryDomain, candidates: List[str]) -> str:
        """Ask who a structured question is about."""
        noun = DOMAIN_NOUNS.get(domain, "records")
        if candidates:
            names = ", ".join(candidates[:-1]) + f" or {candidates[-1]}" if len(candidates) > 1 else candidates[0]
            return f"Whose {noun} should I check: {names}?"
        return f"Whose {noun} should I check? Please tell me the person's name."

    @staticmethod
    def _format_value(reading: VitalReading) -> str:
        if reading.systolic is not None and reading.diastolic is not None:
            value = f"{reading.systolic}/{reading.diastolic}"
        elif reading.value is not None:
            value = f"{reading.value:g}"
        else:
            value = "no value"
        return f"{value} {reading.unit}" if reading.unit else value
