# backend/courtbook/routes/v1/__init__.py
"""
API v1 Routes

Versioned API endpoints under /api/v1.
"""

from . import availability, bookings, payments, slots, webhooks

__all__ = [
    "availability",
    "bookings",
    "payments",
    "slots",
    "webhooks",
]
