"""DentalOS: appointment scheduling for dental clinics."""

__version__ = "0.1.0"
