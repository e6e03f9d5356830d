"""
Weekly epochs.

Week numbers count Sunday-to-Saturday weeks from January 1st of the local
calendar year, so the first and last weeks of a year are usually partial and a
week that straddles New Year gets two different ids. The epoch end is the end of
the Sunday that follows the current day, which means the countdown for any day
of a week (Sunday included) targets the close of the next Sunday.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from ..config import MATCH_TIMEZONE


@dataclass(frozen=True)
class Epoch:
    id: str
    end: datetime


def _sunday_weekday(d: date) -> int:
    return (d.weekday() + 1) % 7


def _local_date(t: datetime, tz: str) -> date:
    return t.astimezone(ZoneInfo(tz)).date()


def week_number(d: date) -> int:
    jan1 = date(d.year, 1, 1)
    days_since_jan1 = (d - jan1).days
    return math.ceil((days_since_jan1 + _sunday_weekday(jan1) + 1) / 7)


def epoch_id(t: datetime, tz: str = MATCH_TIMEZONE) -> str:
    d = _local_date(t, tz)
    return f"{d.year}-W{week_number(d):02d}"


def epoch_end(t: datetime, tz: str = MATCH_TIMEZONE) -> datetime:
    d = _local_date(t, tz)
    end_day = d + timedelta(days=7 - _sunday_weekday(d))
    return datetime.combine(end_day, time(23, 59, 59, 999000), tzinfo=ZoneInfo(tz))


def current_epoch(now: datetime, tz: str = MATCH_TIMEZONE) -> Epoch:
    return Epoch(id=epoch_id(now, tz), end=epoch_end(now, tz))


def seconds_until(end: datetime, now: datetime) -> int:
    return max(0, math.floor((end - now).total_seconds()))


def seconds_until_epoch_end(now: datetime, tz: str = MATCH_TIMEZONE) -> int:
    return seconds_until(epoch_end(now, tz), now)
