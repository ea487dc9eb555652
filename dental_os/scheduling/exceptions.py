"""Scheduling error taxonomy.

Every error is local to a single request. ``http_status`` is the status the
API layer answers with; none of these are retried by the server.
"""

from datetime import time


class SchedulingError(Exception):
    """Base exception for all scheduling errors."""

    http_status = 422


class InvalidDateError(SchedulingError):
    """Raised for a malformed date or one outside the booking policy."""


class ClinicClosedError(SchedulingError):
    """Raised on the write path when the clinic is closed on the date."""

    def __init__(self, message: str = "Clinic is closed on this date.") -> None:
        super().__init__(message)


class InvalidStartTimeError(SchedulingError):
    """Raised when a start is off the grid or the run leaves working hours."""

    def __init__(
        self, message: str = "Invalid start time (not on grid or outside hours)."
    ) -> None:
        super().__init__(message)


class SlotFullError(SchedulingError):
    """Raised when a block in the requested run has no room left."""

    def __init__(self, full_at: time, message: str | None = None) -> None:
        self.full_at = full_at
        super().__init__(
            message or f"Time slot starting at {full_at.strftime('%H:%M')} is already full."
        )


class NoDentistAvailableError(SchedulingError):
    """Raised when no active dentist's hours cover the requested run."""

    def __init__(self, message: str = "No dentists are available at this time.") -> None:
        super().__init__(message)


class PatientOverlapError(SchedulingError):
    """Raised when the patient already holds an overlapping appointment."""

    def __init__(
        self,
        message: str = (
            "You already have an appointment at this time. "
            "Please choose a different time slot."
        ),
    ) -> None:
        super().__init__(message)


class InvalidTransitionError(SchedulingError):
    """Raised when an appointment cannot move to the requested status."""


class NotFoundError(SchedulingError):
    """Base for missing records."""

    http_status = 404


class AppointmentNotFoundError(NotFoundError):
    def __init__(self, appointment_id: object) -> None:
        self.appointment_id = appointment_id
        super().__init__("Appointment not found.")


class ServiceNotFoundError(NotFoundError):
    def __init__(self, service_id: object) -> None:
        self.service_id = service_id
        super().__init__("Service not found.")


class DentistNotFoundError(NotFoundError):
    def __init__(self, dentist_id: object) -> None:
        self.dentist_id = dentist_id
        super().__init__("Dentist not found.")


class PatientNotFoundError(NotFoundError):
    def __init__(self, patient_id: object) -> None:
        self.patient_id = patient_id
        super().__init__("Patient not found.")
