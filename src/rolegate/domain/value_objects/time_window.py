"""Daily time window used by contextual rule conditions."""

from dataclasses import dataclass
from datetime import datetime, time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from rolegate.domain.exceptions import ValidationError


def _parse_clock(value: str) -> time:
    try:
        hours, minutes = value.split(":")
        return time(int(hours), int(minutes))
    except (ValueError, AttributeError):
        raise ValidationError(f"invalid time of day {value!r}, expected HH:MM") from None


@dataclass(frozen=True)
class TimeWindow:
    """[start, end) each day, optionally limited to ISO weekdays (1=Mon..7=Sun).

    A window whose end is before its start wraps past midnight. When a
    timezone is given, aware datetimes are converted to it before matching;
    naive datetimes are taken as already local.
    """

    start: time
    end: time
    weekdays: frozenset[int] = frozenset()
    timezone: str | None = None

    def __post_init__(self) -> None:
        if self.start == self.end:
            raise ValidationError("time window start and end must differ")
        if any(d < 1 or d > 7 for d in self.weekdays):
            raise ValidationError("weekdays must be in 1..7")
        if self.timezone:
            try:
                ZoneInfo(self.timezone)
            except (ZoneInfoNotFoundError, ValueError):
                raise ValidationError(f"unknown timezone {self.timezone!r}") from None

    @classmethod
    def parse(
        cls,
        start: str,
        end: str,
        weekdays: tuple[int, ...] | list[int] = (),
        timezone: str | None = None,
    ) -> "TimeWindow":
        return cls(_parse_clock(start), _parse_clock(end), frozenset(weekdays), timezone)

    def contains(self, moment: datetime) -> bool:
        local = moment
        if self.timezone and moment.tzinfo is not None:
            local = moment.astimezone(ZoneInfo(self.timezone))
        if self.weekdays and local.isoweekday() not in self.weekdays:
            return False
        clock = local.time().replace(tzinfo=None)
        if self.start < self.end:
            return self.start <= clock < self.end
        return clock >= self.start or clock < self.end

    def to_dict(self) -> dict[str, object]:
        return {
            "start": self.start.strftime("%H:%M"),
            "end": self.end.strftime("%H:%M"),
            "weekdays": sorted(self.weekdays),
            "timezone": self.timezone,
        }
