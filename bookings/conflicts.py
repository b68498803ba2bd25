"""
Overlap detection between a candidate interval and a mentor's sessions.

Intervals are half-open, ``[start, end)``: a session ending at 15:00 and a
request starting at 15:00 do not conflict. Only pending and confirmed
sessions hold time; terminal sessions are ignored.
"""
from datetime import datetime
from typing import Iterable, List, Protocol

from bookings.models import ACTIVE_STATUSES


class Interval(Protocol):
    start_time: datetime
    end_time: datetime
    status: str


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def find_conflicts(existing: Iterable[Interval], start: datetime, end: datetime) -> List[Interval]:
    return [
        s
        for s in existing
        if s.status in ACTIVE_STATUSES and overlaps(s.start_time, s.end_time, start, end)
    ]


def has_conflict(existing: Iterable[Interval], start: datetime, end: datetime) -> bool:
    return bool(find_conflicts(existing, start, end))
