# backend/courtbook/core/constants.py
"""
Platform-wide scheduling and payment constants.

Values that are tunable per deployment are surfaced again on
``Settings``; the constants here are their defaults.
"""

# Booking granularity used for computed gap slots
SLOT_GRANULARITY_MINUTES = 30
MIN_SLOT_DURATION_MINUTES = 60
MINUTES_PER_DAY = 24 * 60

DEFAULT_PLATFORM_TIMEZONE = "America/Los_Angeles"

MAX_ADVANCE_BOOKING_DAYS = 180
CANCELLATION_NOTICE_HOURS = 48
RECURRING_WEEKLY_MAX_MONTHS = 3
RECURRING_MONTHLY_MAX_MONTHS = 6

DEFAULT_SLOT_INTERVAL_MINUTES = 60

# Slot instance action types
ACTION_INSTANT_BOOK = "instant_book"
ACTION_REQUEST_PRIVATE = "request_private"
ACTION_INFO_ONLY_OPEN_GYM = "info_only_open_gym"

BOOKABLE_ACTION_TYPES = (ACTION_INSTANT_BOOK, ACTION_REQUEST_PRIVATE)

# Modal bullet points that promise reservations drop-in sessions cannot honor
DISALLOWED_MODAL_BULLETS = frozenset(
    {
        "reserve your spot in advance",
        "book now to guarantee your spot",
        "reservation required",
        "pay online to reserve",
    }
)

EXTERNAL_BLOCK_ACTIVE = "active"
