from __future__ import annotations

import dataclasses
import datetime as dt
from collections.abc import Iterable, Iterator

from .models import CommitDescriptor


def parse_day(value: str) -> dt.date:
    s = (value or "").strip()
    try:
        if len(s) != 10:
            raise ValueError(s)
        return dt.date.fromisoformat(s)
    except ValueError:
        raise ValueError(f"Invalid date: {value!r} (expected YYYY-MM-DD)") from None


def _as_utc(ts: dt.datetime) -> dt.datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=dt.timezone.utc)
    return ts.astimezone(dt.timezone.utc)


@dataclasses.dataclass(frozen=True)
class DateRange:
    start: dt.datetime | None = None  # inclusive
    end: dt.datetime | None = None  # inclusive

    def __post_init__(self) -> None:
        if self.start is not None:
            object.__setattr__(self, "start", _as_utc(self.start))
        if self.end is not None:
            object.__setattr__(self, "end", _as_utc(self.end))
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValueError(f"start {self.start.isoformat()} is after end {self.end.isoformat()}")

    @classmethod
    def from_days(cls, start: dt.date | None = None, end: dt.date | None = None) -> DateRange:
        """`end` covers the whole day, up to its last microsecond."""
        start_ts = dt.datetime.combine(start, dt.time.min, tzinfo=dt.timezone.utc) if start is not None else None
        end_ts = dt.datetime.combine(end, dt.time.max, tzinfo=dt.timezone.utc) if end is not None else None
        return cls(start=start_ts, end=end_ts)

    @classmethod
    def parse(cls, start: str | None = None, end: str | None = None) -> DateRange:
        start_day = parse_day(start) if start else None
        end_day = parse_day(end) if end else None
        return cls.from_days(start_day, end_day)

    @property
    def unbounded(self) -> bool:
        return self.start is None and self.end is None

    @property
    def label(self) -> str:
        if self.start is not None and self.end is not None:
            return f"{self.start.date().isoformat()} .. {self.end.date().isoformat()}"
        if self.start is not None:
            return f"since {self.start.date().isoformat()}"
        if self.end is not None:
            return f"until {self.end.date().isoformat()}"
        return "all history"

    def contains(self, ts: dt.datetime) -> bool:
        t = _as_utc(ts)
        if self.start is not None and t < self.start:
            return False
        if self.end is not None and t > self.end:
            return False
        return True


def filter_commits(commits: Iterable[CommitDescriptor], date_range: DateRange | None) -> Iterator[CommitDescriptor]:
    if date_range is None or date_range.unbounded:
        yield from commits
        return
    for commit in commits:
        if date_range.contains(commit.authored_at):
            yield commit
