"""
Opening Hours Provider
======================

Resolves a weekly opening-hours table for the owner of an order (branch
first, then business) and answers "is it open at instant X?".

Resolution rules:
-----------------
- If the branch publishes any rows, only branch rows are used; otherwise the
  business rows are used.
- An owner that publishes no rows at all is unrestricted (always open).
- A day with no row, or with is_closed set, is closed.
- An open day with no open/close times is open all day.
- The last orderable minute is close_time minus the owner's
  last_order_before_closing_minutes (branch value, else business value).
- A close time earlier than the open time wraps past midnight; the
  after-midnight tail is checked against the previous day's row.
- The next opening is the earliest open instant within the coming week
  (today through the same weekday next week).
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models import Branch, Business, OpeningHours
from ..time_utils import DAY_NAMES, day_name, get_zone, parse_hhmm

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class DayHours:
    day: str
    is_closed: bool
    open_minute: Optional[int] = None
    close_minute: Optional[int] = None

    @property
    def all_day(self) -> bool:
        return not self.is_closed and (self.open_minute is None or self.close_minute is None)

    @property
    def overnight(self) -> bool:
        return (
            not self.all_day
            and not self.is_closed
            and self.close_minute < self.open_minute
        )


@dataclass
class WeeklyHours:
    """Weekly table plus the owner's last-order offset. days is empty when nothing is published."""
    days: Dict[str, DayHours]
    last_order_before_closing_minutes: int = 0
    timezone: Optional[str] = None

    @property
    def unrestricted(self) -> bool:
        return not self.days


@dataclass
class OpenStatus:
    is_open: bool
    reason: str
    minutes_until_last_order: Optional[int] = None
    last_order_time: Optional[str] = None
    # Set by is_open_at when closed; in the owner's timezone
    next_opening: Optional[datetime] = None


def _fmt(minute: int) -> str:
    minute %= MINUTES_PER_DAY
    return f"{minute // 60:02d}:{minute % 60:02d}"


def _to_day_hours(row: OpeningHours) -> DayHours:
    return DayHours(
        day=row.day_of_week.lower(),
        is_closed=bool(row.is_closed),
        open_minute=parse_hhmm(row.open_time) if row.open_time else None,
        close_minute=parse_hhmm(row.close_time) if row.close_time else None,
    )


def _rows_for(db: Session, owner_type: str, owner_id: int):
    return (
        db.query(OpeningHours)
        .filter(OpeningHours.owner_type == owner_type, OpeningHours.owner_id == owner_id)
        .all()
    )


def get_weekly_hours(db: Session, business: Business, branch: Optional[Branch] = None) -> WeeklyHours:
    rows = _rows_for(db, "branch", branch.id) if branch is not None else []
    if not rows:
        rows = _rows_for(db, "business", business.id)

    last_order = business.last_order_before_closing_minutes or 0
    if branch is not None and branch.last_order_before_closing_minutes is not None:
        last_order = branch.last_order_before_closing_minutes

    return WeeklyHours(
        days={row.day_of_week.lower(): _to_day_hours(row) for row in rows},
        last_order_before_closing_minutes=last_order,
        timezone=business.timezone,
    )


def _window(hours: DayHours, last_order: int):
    """(open, effective_close) in minutes; close may exceed a day for overnight rows."""
    close = hours.close_minute
    if hours.overnight:
        close += MINUTES_PER_DAY
    return hours.open_minute, close - last_order


def check_open_at(weekly: WeeklyHours, local_instant: datetime) -> OpenStatus:
    """
    Evaluate the table at an instant already expressed in the owner's timezone.
    """
    if weekly.unrestricted:
        return OpenStatus(is_open=True, reason="No opening hours configured")

    today = day_name(local_instant)
    minute = local_instant.hour * 60 + local_instant.minute
    last_order = weekly.last_order_before_closing_minutes

    # After-midnight tail of yesterday's overnight window
    yesterday = DAY_NAMES[(DAY_NAMES.index(today) - 1) % 7]
    prev = weekly.days.get(yesterday)
    if prev is not None and prev.overnight:
        _, effective_close = _window(prev, last_order)
        shifted = minute + MINUTES_PER_DAY
        if shifted <= effective_close:
            return OpenStatus(
                is_open=True,
                reason="Open",
                minutes_until_last_order=effective_close - shifted,
                last_order_time=_fmt(effective_close),
            )

    hours = weekly.days.get(today)
    if hours is None or hours.is_closed:
        return OpenStatus(is_open=False, reason=f"Closed on {today.capitalize()}")
    if hours.all_day:
        return OpenStatus(is_open=True, reason="Open")

    open_minute, effective_close = _window(hours, last_order)
    if open_minute <= minute <= effective_close:
        return OpenStatus(
            is_open=True,
            reason="Open",
            minutes_until_last_order=effective_close - minute,
            last_order_time=_fmt(effective_close),
        )

    reason = f"Closed. Hours: {_fmt(hours.open_minute)} - {_fmt(hours.close_minute)}"
    if last_order > 0:
        reason += f" (last order {last_order} minutes before closing)"
    return OpenStatus(is_open=False, reason=reason)


def next_opening(weekly: WeeklyHours, local_instant: datetime) -> Optional[datetime]:
    """
    Earliest instant at or after local_instant when orders are accepted.

    Returns local_instant itself when open now, and None when nothing opens
    between today and the same weekday next week.
    """
    if check_open_at(weekly, local_instant).is_open:
        return local_instant

    midnight = local_instant.replace(hour=0, minute=0, second=0, microsecond=0)
    last_order = weekly.last_order_before_closing_minutes
    for offset in range(8):
        day_start = midnight + timedelta(days=offset)
        hours = weekly.days.get(day_name(day_start))
        if hours is None or hours.is_closed:
            continue
        if hours.all_day:
            candidate = day_start
        else:
            open_minute, effective_close = _window(hours, last_order)
            if effective_close < open_minute:
                # last-order offset swallows the whole window
                continue
            candidate = day_start + timedelta(minutes=open_minute)
        if candidate > local_instant:
            return candidate
    return None


def format_next_opening(instant: datetime) -> str:
    return f"{day_name(instant).capitalize()} {instant:%Y-%m-%d} at {instant:%H:%M}"


def is_open_at(
    db: Session,
    business: Business,
    branch: Optional[Branch],
    instant: datetime,
) -> OpenStatus:
    weekly = get_weekly_hours(db, business, branch)
    local = instant.astimezone(get_zone(business.timezone))
    status = check_open_at(weekly, local)
    if not status.is_open:
        status.next_opening = next_opening(weekly, local)
    logger.debug(
        "Opening hours check for business %s at %s: %s (%s)",
        business.id, local.isoformat(), status.is_open, status.reason,
    )
    return status


def format_weekly_hours(weekly: WeeklyHours) -> List[Dict[str, Any]]:
    """One entry per published day, Monday first, for display to the customer."""
    rows = []
    for day in DAY_NAMES:
        hours = weekly.days.get(day)
        if hours is None:
            continue
        entry: Dict[str, Any] = {"day": day, "closed": hours.is_closed}
        if hours.all_day:
            entry["hours"] = "open all day"
        elif not hours.is_closed:
            entry["hours"] = f"{_fmt(hours.open_minute)} - {_fmt(hours.close_minute)}"
            if weekly.last_order_before_closing_minutes:
                _, effective_close = _window(hours, weekly.last_order_before_closing_minutes)
                entry["last_order"] = _fmt(effective_close)
        rows.append(entry)
    return rows
