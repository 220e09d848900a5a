"""Event schedule helpers: time parsing and effective end computation."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from app.domain.events.errors import InvalidSchedule

_HHMM = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def parse_hhmm(value: str | None) -> time:
    match = _HHMM.match((value or "").strip())
    if not match:
        raise InvalidSchedule(f"Invalid time '{value}', expected HH:MM")
    return time(int(match.group(1)), int(match.group(2)))


def parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value or "").strip()
    try:
        # Accept full ISO timestamps as sent by browsers; only the day matters.
        return date.fromisoformat(text[:10])
    except ValueError as exc:
        raise InvalidSchedule(f"Invalid date '{value}', expected YYYY-MM-DD") from exc


@dataclass(slots=True, frozen=True)
class TimeSlot:
    start_date: date
    start_time: time
    end_date: date
    end_time: time

    @classmethod
    def from_json(cls, raw: dict[str, Any]) -> "TimeSlot":
        def pick(snake: str, camel: str) -> Any:
            return raw.get(snake, raw.get(camel))

        slot = cls(
            start_date=parse_date(pick("start_date", "startDate")),
            start_time=parse_hhmm(pick("start_time", "startTime")),
            end_date=parse_date(pick("end_date", "endDate")),
            end_time=parse_hhmm(pick("end_time", "endTime")),
        )
        if (slot.end_date, slot.end_time) < (slot.start_date, slot.start_time):
            raise InvalidSchedule("Time slot ends before it starts")
        return slot

    def to_json(self) -> dict[str, str]:
        return {
            "start_date": self.start_date.isoformat(),
            "start_time": self.start_time.strftime("%H:%M"),
            "end_date": self.end_date.isoformat(),
            "end_time": self.end_time.strftime("%H:%M"),
        }


def parse_slots(raw: Iterable[dict[str, Any]] | None) -> list[TimeSlot]:
    return [TimeSlot.from_json(item) for item in (raw or [])]


def localize(day: date, at: time, tz_name: str) -> datetime:
    return datetime.combine(day, at, tzinfo=ZoneInfo(tz_name))


def effective_end(event: Any, tz_name: str) -> datetime:
    """Latest end among the main end date/time and every multi-day slot."""
    candidates = [localize(parse_date(event.end_date), parse_hhmm(event.end_time), tz_name)]
    for slot in parse_slots(getattr(event, "date_time_slots", None)):
        candidates.append(localize(slot.end_date, slot.end_time, tz_name))
    return max(candidates)


def has_ended(event: Any, now: datetime, tz_name: str) -> bool:
    return effective_end(event, tz_name) <= now


def local_today(tz_name: str, now: datetime | None = None) -> date:
    current = now or datetime.now(ZoneInfo(tz_name))
    return current.astimezone(ZoneInfo(tz_name)).date()


def event_date_key(event: Any) -> date:
    """Day used to look up per-date availability overrides."""
    return parse_date(event.start_date)
