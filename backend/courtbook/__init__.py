"""Court booking backend: availability, conflict arbitration, bookings and payments."""

__version__ = "0.1.0"
