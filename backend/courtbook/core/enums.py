# backend/courtbook/core/enums.py
"""
Core enums for the court booking platform.
"""

from enum import Enum


class RoleName(str, Enum):
    """
    Caller roles, resolved once per request.

    A user may hold several flags; the effective role for visibility
    decisions is the most privileged one.
    """

    ADMIN = "admin"
    VENUE_OWNER = "venue_owner"
    RENTER = "renter"


class RoleView(str, Enum):
    """Explicit perspective requested when listing bookings."""

    RENTER = "renter"
    HOST = "host"


class TimeView(str, Enum):
    UPCOMING = "upcoming"
    PAST = "past"


class ConflictType(str, Enum):
    TIME_OVERLAP = "time_overlap"
    SLOT_UNAVAILABLE = "slot_unavailable"


class PolicyRule(str, Enum):
    """Rule codes reported by the booking policy gate."""

    MIN_ADVANCE_DAYS = "min_advance_days"
    MIN_LEAD_TIME = "min_lead_time"
    SAME_DAY_CUTOFF = "same_day_cutoff"
    BLACKOUT = "blackout"
    HOLIDAY = "holiday"


class RecurringType(str, Enum):
    NONE = "none"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
