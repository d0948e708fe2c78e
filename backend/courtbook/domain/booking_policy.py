"""Venue booking policy: normalization of admin config and the policy gate."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from ..core.enums import PolicyRule
from ..core.timezone_utils import combine_local, to_local
from .time_ranges import TimeLike, time_to_minutes


@dataclass(frozen=True)
class OperatingHourWindow:
    day_of_week: int  # 0 = Sunday
    start_time: str  # HH:MM:SS
    end_time: str


@dataclass(frozen=True)
class BookingPolicy:
    venue_id: str
    min_advance_booking_days: int = 0
    min_advance_lead_time_hours: int = 0
    same_day_cutoff_time: Optional[time] = None
    blackout_dates: frozenset[date] = field(default_factory=frozenset)
    holiday_dates: frozenset[date] = field(default_factory=frozenset)
    # Loaded for display; the gate does not consult these windows.
    operating_hours: tuple[OperatingHourWindow, ...] = ()
    drop_in_enabled: bool = False
    drop_in_price: Optional[Decimal] = None

    @classmethod
    def permissive(cls, venue_id: str) -> "BookingPolicy":
        """Policy used when a venue has no admin config: every check passes."""
        return cls(venue_id=venue_id)

    @classmethod
    def from_config(cls, venue_id: str, row: Optional[Any]) -> "BookingPolicy":
        """
        Normalize a ``VenueAdminConfig`` row (or a mapping with the same keys).

        ``None`` yields the permissive policy.
        """
        if row is None:
            return cls.permissive(venue_id)

        def _get(key: str, default: Any = None) -> Any:
            if isinstance(row, Mapping):
                return row.get(key, default)
            return getattr(row, key, default)

        return cls(
            venue_id=venue_id,
            min_advance_booking_days=max(0, int(_get("min_advance_booking_days") or 0)),
            min_advance_lead_time_hours=max(0, int(_get("min_advance_lead_time_hours") or 0)),
            same_day_cutoff_time=_parse_optional_time(_get("same_day_cutoff_time")),
            blackout_dates=_parse_dates(_get("blackout_dates")),
            holiday_dates=_parse_dates(_get("holiday_dates")),
            operating_hours=normalize_operating_hours(_get("operating_hours")),
            drop_in_enabled=bool(_get("drop_in_enabled")),
            drop_in_price=_positive_decimal(_get("drop_in_price")),
        )


@dataclass(frozen=True)
class PolicyViolation:
    rule: PolicyRule
    message: str


def find_policy_violation(
    slot_date: date,
    start_time: TimeLike,
    policy: Optional[BookingPolicy],
    now: datetime,
    *,
    tz_name: Optional[str] = None,
) -> Optional[PolicyViolation]:
    """
    First rule the slot breaks, or ``None`` if it is allowed.

    Rules are evaluated in a fixed order: minimum advance days, lead time,
    same-day cutoff, blackout dates, holidays. "Today" and the cutoff are
    judged in venue-local time.
    """
    if policy is None:
        return None

    local_now = to_local(now, tz_name)
    today = local_now.date()

    if policy.min_advance_booking_days > 0:
        earliest = today + timedelta(days=policy.min_advance_booking_days)
        if slot_date < earliest:
            return PolicyViolation(
                PolicyRule.MIN_ADVANCE_DAYS,
                "Booking does not meet minimum advance booking period of "
                f"{policy.min_advance_booking_days} day(s)",
            )

    if policy.min_advance_lead_time_hours > 0:
        minutes = time_to_minutes(start_time)
        slot_start = combine_local(slot_date, time(minutes // 60, minutes % 60), tz_name)
        if slot_start - local_now < timedelta(hours=policy.min_advance_lead_time_hours):
            return PolicyViolation(
                PolicyRule.MIN_LEAD_TIME,
                "Booking does not meet minimum lead time of "
                f"{policy.min_advance_lead_time_hours} hour(s)",
            )

    cutoff = policy.same_day_cutoff_time
    if cutoff is not None and slot_date == today:
        if local_now.time().replace(tzinfo=None) >= cutoff:
            return PolicyViolation(
                PolicyRule.SAME_DAY_CUTOFF,
                f"Same-day bookings close at the cutoff time of {cutoff.strftime('%H:%M')}",
            )

    if slot_date in policy.blackout_dates:
        return PolicyViolation(PolicyRule.BLACKOUT, "Venue is unavailable on this blackout date")

    if slot_date in policy.holiday_dates:
        return PolicyViolation(PolicyRule.HOLIDAY, "Venue is unavailable on this holiday")

    return None


def is_slot_allowed(
    slot_date: date,
    start_time: TimeLike,
    policy: Optional[BookingPolicy],
    now: datetime,
    *,
    tz_name: Optional[str] = None,
) -> bool:
    return find_policy_violation(slot_date, start_time, policy, now, tz_name=tz_name) is None


def normalize_operating_hours(raw: Any) -> tuple[OperatingHourWindow, ...]:
    """Drop malformed windows and sort the rest by weekday then start."""
    if not isinstance(raw, (list, tuple)):
        return ()

    windows = []
    for entry in raw:
        window = _normalize_window(entry)
        if window is not None:
            windows.append(window)
    windows.sort(key=lambda w: (w.day_of_week, w.start_time))
    return tuple(windows)


def _normalize_window(entry: Any) -> Optional[OperatingHourWindow]:
    if not isinstance(entry, Mapping):
        return None
    try:
        day = int(entry.get("day_of_week"))
    except (TypeError, ValueError):
        return None
    if day < 0 or day > 6:
        return None

    start = _normalize_clock_string(entry.get("start_time"))
    end = _normalize_clock_string(entry.get("end_time"))
    if start is None or end is None or start >= end:
        return None
    return OperatingHourWindow(day_of_week=day, start_time=start, end_time=end)


def _normalize_clock_string(value: Any) -> Optional[str]:
    if isinstance(value, time):
        return value.strftime("%H:%M:%S")
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if len(candidate) == 5:
        candidate += ":00"
    try:
        parsed = datetime.strptime(candidate, "%H:%M:%S")
    except ValueError:
        return None
    return parsed.strftime("%H:%M:%S")


def _parse_optional_time(value: Any) -> Optional[time]:
    if value is None or value == "":
        return None
    if isinstance(value, time):
        return value.replace(tzinfo=None)
    normalized = _normalize_clock_string(value)
    if normalized is None:
        return None
    return datetime.strptime(normalized, "%H:%M:%S").time()


def _parse_dates(values: Any) -> frozenset[date]:
    if not isinstance(values, (list, tuple, set, frozenset)):
        return frozenset()
    parsed = set()
    for value in values:
        parsed_date = _coerce_date(value)
        if parsed_date is not None:
            parsed.add(parsed_date)
    return frozenset(parsed)


def _coerce_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def _positive_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return amount

