from __future__ import annotations

import datetime as dt

import pytest

from repo_activity.models import CommitDescriptor
from repo_activity.periods import DateRange, filter_commits, parse_day

UTC = dt.timezone.utc


def _commit(sha: str, ts: dt.datetime) -> CommitDescriptor:
    return CommitDescriptor(sha=sha, author_name="A", author_email="a@e", authored_at=ts, message="m")


def test_parse_day() -> None:
    assert parse_day("2025-03-07") == dt.date(2025, 3, 7)


@pytest.mark.parametrize("bad", ["2025-3-7", "20250307", "2025-02-30", "", "yesterday"])
def test_parse_day_invalid(bad: str) -> None:
    with pytest.raises(ValueError):
        parse_day(bad)


def test_bounds_are_inclusive_to_the_millisecond() -> None:
    start = dt.datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)
    end = dt.datetime(2025, 1, 31, 12, 0, 0, tzinfo=UTC)
    r = DateRange(start=start, end=end)
    ms = dt.timedelta(milliseconds=1)

    assert r.contains(start)
    assert r.contains(end)
    assert not r.contains(start - ms)
    assert not r.contains(end + ms)


def test_from_days_covers_whole_end_day() -> None:
    r = DateRange.from_days(dt.date(2025, 1, 1), dt.date(2025, 1, 2))
    assert r.contains(dt.datetime(2025, 1, 1, 0, 0, 0, tzinfo=UTC))
    assert r.contains(dt.datetime(2025, 1, 2, 23, 59, 59, tzinfo=UTC))
    assert not r.contains(dt.datetime(2024, 12, 31, 23, 59, 59, 999000, tzinfo=UTC))
    assert not r.contains(dt.datetime(2025, 1, 3, 0, 0, 0, tzinfo=UTC))


def test_open_bounds() -> None:
    far_past = dt.datetime(1971, 1, 1, tzinfo=UTC)
    far_future = dt.datetime(2999, 1, 1, tzinfo=UTC)
    assert DateRange().contains(far_past)
    assert DateRange.parse(start="2025-01-01").contains(far_future)
    assert not DateRange.parse(start="2025-01-01").contains(far_past)
    assert DateRange.parse(end="2025-01-01").contains(far_past)
    assert not DateRange.parse(end="2025-01-01").contains(far_future)


def test_non_utc_timestamps_are_compared_in_utc() -> None:
    r = DateRange.parse("2025-01-02", "2025-01-02")
    # 2025-01-02T01:00+02:00 is 2025-01-01T23:00Z
    plus_two = dt.timezone(dt.timedelta(hours=2))
    assert not r.contains(dt.datetime(2025, 1, 2, 1, 0, tzinfo=plus_two))
    assert r.contains(dt.datetime(2025, 1, 2, 3, 0, tzinfo=plus_two))


def test_start_after_end_rejected() -> None:
    with pytest.raises(ValueError):
        DateRange.parse("2025-02-01", "2025-01-01")


def test_label() -> None:
    assert DateRange().label == "all history"
    assert DateRange.parse("2025-01-01").label == "since 2025-01-01"
    assert DateRange.parse(None, "2025-01-31").label == "until 2025-01-31"
    assert DateRange.parse("2025-01-01", "2025-01-31").label == "2025-01-01 .. 2025-01-31"


def test_filter_commits_keeps_order() -> None:
    commits = [
        _commit("c", dt.datetime(2025, 1, 3, tzinfo=UTC)),
        _commit("b", dt.datetime(2025, 1, 2, tzinfo=UTC)),
        _commit("a", dt.datetime(2025, 1, 1, tzinfo=UTC)),
    ]
    kept = list(filter_commits(commits, DateRange.parse("2025-01-02", "2025-01-03")))
    assert [c.sha for c in kept] == ["c", "b"]
    assert [c.sha for c in filter_commits(commits, None)] == ["c", "b", "a"]
