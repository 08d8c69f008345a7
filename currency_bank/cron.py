"""
Cron Evaluator Module

Parses 5-field UNIX cron expressions (minute hour day-of-month month
day-of-week) and computes the delay until the next matching instant.

APScheduler's CronTrigger does the field matching. Two UNIX rules are
applied on top of it:
- day-of-week numbers count from Sunday (0 and 7 both mean Sunday)
- when both day-of-month and day-of-week are restricted, either may match
"""

from datetime import datetime, timedelta, timezone, tzinfo
from typing import List, Optional

from apscheduler.triggers.cron import CronTrigger
from tzlocal import get_localzone

from .errors import ScheduleParseError


DEFAULT_FALLBACK_DELAY = timedelta(minutes=1)

# Fires further out than this are treated as "no future match"
SEARCH_HORIZON = timedelta(days=366 * 10)

WEEKDAY_NAMES = ["sun", "mon", "tue", "wed", "thu", "fri", "sat"]


def _weekday_number(token: str, expression: str) -> int:
    token = token.strip().lower()
    if token in WEEKDAY_NAMES:
        return WEEKDAY_NAMES.index(token)
    if token.isdigit() and 0 <= int(token) <= 7:
        return int(token) % 7
    raise ScheduleParseError(f"Invalid day-of-week '{token}' in schedule '{expression}'")


def _translate_day_of_week(field: str, expression: str) -> str:
    """
    Rewrite a UNIX day-of-week field as APScheduler weekday names

    APScheduler numbers weekdays from Monday, so numeric fields are expanded
    to the matching set of days and emitted by name.
    """
    if field == "*":
        return field

    days = set()
    for element in field.split(","):
        base, _, step_text = element.partition("/")
        step = 1
        if step_text:
            if not step_text.isdigit() or int(step_text) == 0:
                raise ScheduleParseError(f"Invalid step '{step_text}' in schedule '{expression}'")
            step = int(step_text)

        if base == "*":
            first, last = 0, 6
        elif "-" in base:
            start_text, _, end_text = base.partition("-")
            first = _weekday_number(start_text, expression)
            last = _weekday_number(end_text, expression)
            # "x-7" ends on Sunday after Saturday
            if end_text.strip() == "7":
                last = 7
            if first > last:
                raise ScheduleParseError(f"Invalid day-of-week range '{base}' in schedule '{expression}'")
        else:
            first = _weekday_number(base, expression)
            last = 6 if step_text else first

        days.update(day % 7 for day in range(first, last + 1, step))

    if len(days) == 7:
        return "*"
    return ",".join(WEEKDAY_NAMES[day] for day in sorted(days))


def _split_fields(expression: str) -> List[str]:
    if not isinstance(expression, str) or not expression.strip():
        raise ScheduleParseError("Schedule expression is empty")
    fields = expression.split()
    if len(fields) != 5:
        raise ScheduleParseError(
            f"Schedule '{expression}' must have 5 fields "
            f"(minute hour day_of_month month day_of_week), got {len(fields)}"
        )
    return fields


def build_triggers(expression: str, tz: tzinfo, end_date: Optional[datetime] = None) -> List[CronTrigger]:
    """
    Build the APScheduler trigger(s) matching a UNIX cron expression

    Returns two triggers when day-of-month and day-of-week are both
    restricted; the earliest of their fire times is the UNIX match.

    Raises:
        ScheduleParseError: If the expression is malformed
    """
    minute, hour, day, month, day_of_week = _split_fields(expression)
    day_of_week = _translate_day_of_week(day_of_week, expression)

    if day != "*" and day_of_week != "*":
        variants = [(day, "*"), ("*", day_of_week)]
    else:
        variants = [(day, day_of_week)]

    try:
        return [
            CronTrigger(
                minute=minute, hour=hour, day=dom, month=month, day_of_week=dow,
                timezone=tz, end_date=end_date
            )
            for dom, dow in variants
        ]
    except (ValueError, TypeError) as e:
        raise ScheduleParseError(f"Invalid schedule '{expression}': {e}") from e


def local_time(now: Optional[datetime] = None) -> datetime:
    """
    Aware reference time; naive or missing values take the host's zone

    The zone carries its DST rules, so matches after a transition keep
    their wall-clock time.
    """
    if now is None:
        return datetime.now(get_localzone())
    if now.tzinfo is None:
        return now.replace(tzinfo=get_localzone())
    return now


def validate_schedule(expression: str) -> None:
    """Raise ScheduleParseError if the expression cannot be parsed"""
    build_triggers(expression, get_localzone())


def next_fire_time(expression: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Next instant strictly after now that matches the expression

    Naive datetimes are taken as local time. Matching happens in the zone of
    now. Returns None when nothing matches within the search horizon.

    Raises:
        ScheduleParseError: If the expression is malformed
    """
    now = local_time(now)
    triggers = build_triggers(expression, now.tzinfo, end_date=now + SEARCH_HORIZON)

    # Passing now as the previous fire time makes the result strictly later
    candidates = [trigger.get_next_fire_time(now, now) for trigger in triggers]
    candidates = [candidate for candidate in candidates if candidate is not None]
    return min(candidates) if candidates else None


def next_delay(
    expression: str,
    now: Optional[datetime] = None,
    fallback: timedelta = DEFAULT_FALLBACK_DELAY
) -> timedelta:
    """
    Time until the next matching instant

    Args:
        expression: 5-field UNIX cron expression
        now: Reference time (defaults to the current local time)
        fallback: Delay returned when no future match exists

    Raises:
        ScheduleParseError: If the expression is malformed
    """
    now = local_time(now)
    fire_time = next_fire_time(expression, now)
    if fire_time is None:
        return fallback
    # Elapsed time, not wall-clock difference, across DST transitions
    return fire_time.astimezone(timezone.utc) - now.astimezone(timezone.utc)
