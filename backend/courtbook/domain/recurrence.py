"""Expansion of recurring booking series into concrete occurrence dates."""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Iterator, List, Optional

from ..core.constants import RECURRING_MONTHLY_MAX_MONTHS, RECURRING_WEEKLY_MAX_MONTHS
from ..core.enums import RecurringType


def add_months(start: date, months: int) -> date:
    """Same day-of-month ``months`` later, clamped to the last day of a shorter month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(start.day, last_day))


def default_series_end(
    start: date,
    recurring_type: RecurringType,
    *,
    weekly_max_months: int = RECURRING_WEEKLY_MAX_MONTHS,
    monthly_max_months: int = RECURRING_MONTHLY_MAX_MONTHS,
) -> date:
    if recurring_type == RecurringType.WEEKLY:
        return add_months(start, weekly_max_months)
    if recurring_type == RecurringType.MONTHLY:
        return add_months(start, monthly_max_months)
    return start


def occurrence_dates(
    start: date,
    recurring_type: RecurringType,
    end: Optional[date] = None,
    *,
    weekly_max_months: int = RECURRING_WEEKLY_MAX_MONTHS,
    monthly_max_months: int = RECURRING_MONTHLY_MAX_MONTHS,
) -> List[date]:
    """
    Future occurrences of a series starting on ``start``, inclusive of ``end``.

    The start date itself is excluded since the parent booking covers it.
    Monthly occurrences are computed from ``start`` each time so a series
    beginning on the 31st returns to the 31st whenever the month allows.
    """
    recurring_type = RecurringType(recurring_type)
    if recurring_type == RecurringType.NONE:
        return []

    last = end or default_series_end(
        start,
        recurring_type,
        weekly_max_months=weekly_max_months,
        monthly_max_months=monthly_max_months,
    )

    dates: List[date] = []
    step = 1
    while True:
        if recurring_type == RecurringType.WEEKLY:
            candidate = start + timedelta(weeks=step)
        else:
            candidate = add_months(start, step)
        if candidate > last:
            break
        dates.append(candidate)
        step += 1
    return dates


def iter_dates(date_from: date, date_to: date) -> Iterator[date]:
    """Every date from ``date_from`` to ``date_to`` inclusive."""
    current = date_from
    while current <= date_to:
        yield current
        current += timedelta(days=1)
