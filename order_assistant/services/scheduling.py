"""
Scheduling validation.

Checks a parsed candidate instant against, in order:

1. the owner's opening hours for that weekday (OutsideOpeningHours),
2. the current instant (ScheduleInPast),
3. the largest min_schedule_hours among the draft's schedulable items
   (LeadTimeTooShort),
4. each schedulable item's own time-of-day window and weekday list
   (ItemNotAvailableAtTime).

Parsing free text into an instant happens upstream; this module only ever
sees datetimes.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, Sequence

from ..errors import ItemNotAvailableAtTime, LeadTimeTooShort, OutsideOpeningHours, ScheduleInPast
from ..time_utils import day_name, ensure_aware, get_zone, parse_hhmm
from .catalog import CatalogItem
from .opening_hours import WeeklyHours, check_open_at


def required_lead_hours(items: Iterable[CatalogItem]) -> float:
    """Max min_schedule_hours over schedulable items; 0 when there are none."""
    hours = [item.min_schedule_hours or 0 for item in items if item.is_schedulable]
    return max(hours) if hours else 0


def _check_item_window(item: CatalogItem, local: datetime) -> None:
    if item.days_available and day_name(local) not in item.days_available:
        raise ItemNotAvailableAtTime(item.name, f"available on {', '.join(item.days_available)}")

    if item.available_from and item.available_to:
        start = parse_hhmm(item.available_from)
        end = parse_hhmm(item.available_to)
        minute = local.hour * 60 + local.minute
        if start <= end:
            inside = start <= minute <= end
        else:
            inside = minute >= start or minute <= end
        if not inside:
            raise ItemNotAvailableAtTime(
                item.name,
                f"available from {item.available_from} to {item.available_to}",
            )


def validate_schedule(
    instant: datetime,
    weekly: WeeklyHours,
    items: Sequence[CatalogItem],
    now: datetime,
) -> datetime:
    """
    Validate a candidate instant for a draft containing `items`.

    Naive instants are read in the owner's timezone.

    Returns:
        The validated instant, normalized to UTC.
    """
    instant = ensure_aware(instant, weekly.timezone)
    local = instant.astimezone(get_zone(weekly.timezone))

    status = check_open_at(weekly, local)
    if not status.is_open:
        raise OutsideOpeningHours(
            f"We are not open at {local.strftime('%A %H:%M')}. {status.reason}",
            day=day_name(local),
        )

    if instant <= now:
        raise ScheduleInPast()

    schedulable = [item for item in items if item.is_schedulable]
    lead = required_lead_hours(schedulable)
    if lead and instant < now + timedelta(hours=lead):
        raise LeadTimeTooShort(lead)

    for item in schedulable:
        _check_item_window(item, local)

    return instant.astimezone(timezone.utc)
