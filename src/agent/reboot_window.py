"""
Reboot Window - Decides whether a scheduled reboot may run right now

Rules come from a single custom field in the form "occurrence|weekday|HH:MM":
    Daily||03:00        every day at 03:00
    Weekly|Sunday|02:30 every Sunday at 02:30
    2|Friday|23:00      second Friday of the month at 23:00
"""
import calendar
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum

from src.utils.exceptions import (
    AlreadySatisfied,
    ConfigurationError,
    NotYetDue,
)

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MINUTES = 30

# English names, independent of the host locale
DAY_NAMES = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')

TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)$')
INTEGER_PATTERN = re.compile(r'^[+-]?\d+$')


class RuleKind(Enum):
    DAILY = 'daily'
    WEEKLY = 'weekly'
    NTH_WEEKDAY = 'nth_weekday'


@dataclass(frozen=True)
class RecurrenceRule:
    kind: RuleKind
    time: time
    weekday: str = None
    occurrence: int = None

    def describe(self):
        at = self.time.strftime('%H:%M')
        if self.kind is RuleKind.DAILY:
            return f"daily at {at}"
        if self.kind is RuleKind.WEEKLY:
            return f"every {self.weekday} at {at}"
        return f"occurrence {self.occurrence} of {self.weekday} at {at}"


@dataclass(frozen=True)
class EvaluationWindow:
    start: datetime
    length: int = DEFAULT_WINDOW_MINUTES

    @property
    def end(self):
        return self.start + timedelta(minutes=self.length)

    def contains(self, now):
        """Inclusive on both ends, measured in (fractional) minutes from start"""
        diff_minutes = (now - self.start).total_seconds() / 60
        return 0 <= diff_minutes <= self.length


class DecisionStatus(Enum):
    PERMITTED = 'permitted'
    NOT_YET = 'not_yet'
    ALREADY_SATISFIED = 'already_satisfied'
    INVALID = 'invalid'


@dataclass(frozen=True)
class Decision:
    status: DecisionStatus
    reason: str = ''
    window: EvaluationWindow = None

    @property
    def permitted(self):
        return self.status is DecisionStatus.PERMITTED

    def raise_for_status(self):
        """Raise the matching script error unless the reboot is permitted"""
        if self.status is DecisionStatus.INVALID:
            raise ConfigurationError(self.reason)
        if self.status is DecisionStatus.NOT_YET:
            raise NotYetDue(self.reason)
        if self.status is DecisionStatus.ALREADY_SATISFIED:
            raise AlreadySatisfied(self.reason)


def _parse_weekday(value):
    if value not in DAY_NAMES:
        raise ConfigurationError(f"invalid day name '{value}'")
    return value


def parse_rule(text):
    """
    Parse "occurrence|weekday|HH:MM" into a RecurrenceRule.

    Validation stops at the first failure, in field order. Raises
    ConfigurationError; never returns a partially valid rule.
    """
    if text is None:
        raise ConfigurationError("malformed rule")
    fields = str(text).strip().split('|')
    if len(fields) != 3:
        raise ConfigurationError("malformed rule")

    occurrence_field, weekday_field, time_field = (f.strip() for f in fields)

    weekday = None
    occurrence = None
    if occurrence_field.lower() == 'daily':
        kind = RuleKind.DAILY
    elif occurrence_field.lower() == 'weekly':
        kind = RuleKind.WEEKLY
        weekday = _parse_weekday(weekday_field)
    elif INTEGER_PATTERN.match(occurrence_field):
        occurrence = int(occurrence_field)
        if occurrence < 1:
            raise ConfigurationError("occurrence must be a positive integer")
        kind = RuleKind.NTH_WEEKDAY
        weekday = _parse_weekday(weekday_field)
    else:
        raise ConfigurationError("unrecognized occurrence specifier")

    match = TIME_PATTERN.match(time_field)
    if not match:
        raise ConfigurationError("bad time format")

    return RecurrenceRule(
        kind=kind,
        time=time(int(match.group(1)), int(match.group(2))),
        weekday=weekday,
        occurrence=occurrence,
    )


def nth_weekday(year, month, weekday, occurrence):
    """
    Return the Nth date in the month whose weekday is `weekday`,
    or None when the month has fewer than N of them
    """
    target = DAY_NAMES.index(weekday)
    _, days_in_month = calendar.monthrange(year, month)
    matches = [
        date(year, month, day)
        for day in range(1, days_in_month + 1)
        if date(year, month, day).weekday() == target
    ]
    if occurrence < 1 or occurrence > len(matches):
        return None
    return matches[occurrence - 1]


def day_matches(today, rule):
    """Return (matched, reason) for the calendar part of the rule"""
    if rule.kind is RuleKind.DAILY:
        return True, ''

    today_name = DAY_NAMES[today.weekday()]
    if rule.kind is RuleKind.WEEKLY:
        if today_name == rule.weekday:
            return True, ''
        return False, f"today is {today_name}, not {rule.weekday}"

    scheduled = nth_weekday(today.year, today.month, rule.weekday, rule.occurrence)
    if scheduled is None:
        return False, "no Nth weekday this month"
    if scheduled == today:
        return True, ''
    return False, f"scheduled day this month is {scheduled.isoformat()}"


def evaluate(now, rule, window_minutes=DEFAULT_WINDOW_MINUTES, uptime_minutes=None):
    """
    Decide whether a reboot is permitted at `now`.

    uptime_minutes is the time since the last restart; when it already fits
    inside the window the reboot for this cycle has happened.
    """
    matched, reason = day_matches(now.date(), rule)
    if not matched:
        return Decision(DecisionStatus.NOT_YET, reason)

    window = EvaluationWindow(datetime.combine(now.date(), rule.time, tzinfo=now.tzinfo), window_minutes)
    if not window.contains(now):
        return Decision(
            DecisionStatus.NOT_YET,
            f"outside window {window.start:%Y-%m-%d %H:%M} - {window.end:%Y-%m-%d %H:%M}",
            window,
        )

    if uptime_minutes is not None and uptime_minutes <= window_minutes:
        return Decision(DecisionStatus.ALREADY_SATISFIED, "already rebooted this window", window)

    return Decision(DecisionStatus.PERMITTED, f"inside window ({rule.describe()})", window)


def evaluate_config(text, now, window_minutes=DEFAULT_WINDOW_MINUTES, uptime_minutes=None):
    """Parse and evaluate in one step; configuration errors become INVALID decisions"""
    try:
        rule = parse_rule(text)
    except ConfigurationError as e:
        logger.debug(f"Rejected rule '{text}': {e.message}")
        return Decision(DecisionStatus.INVALID, e.message)
    return evaluate(now, rule, window_minutes, uptime_minutes)
