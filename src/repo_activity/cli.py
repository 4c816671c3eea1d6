from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .config import load_config, resolve_settings
from .errors import ActivityError
from .git import open_repository
from .periods import DateRange
from .run import print_header, print_summary, print_warnings, run_activity
from .store import connect, ensure_schema


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repo-activity",
        description="Collect per-repository, per-contributor and per-commit git statistics into SQLite.",
    )
    parser.add_argument("-r", "--repo-path", type=Path, required=True, help="Path to the git repository.")
    parser.add_argument("-s", "--start-date", type=str, default=None, help="First day to include (YYYY-MM-DD).")
    parser.add_argument("-e", "--end-date", type=str, default=None, help="Last day to include (YYYY-MM-DD).")
    parser.add_argument("--db", type=Path, default=None, help="SQLite database (default: config db_path or repo_activity.db).")
    parser.add_argument("--jobs", type=int, default=None, help="Parallel diff workers (default: CPU count).")
    parser.add_argument("--chunk-size", type=int, default=None, help="Commits per worker chunk.")
    parser.add_argument("--config", type=Path, default=Path("config.json"), help="Path to config.json.")
    return parser


def _fail(error: BaseException | None) -> int:
    print(f"error: {error}", file=sys.stderr)
    print("Nothing was written.", file=sys.stderr)
    return 2


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    args = _build_parser().parse_args(argv)

    try:
        date_range = DateRange.parse(args.start_date, args.end_date)
        config = load_config(args.config)
        settings = resolve_settings(config, db_path=args.db, jobs=args.jobs, chunk_size=args.chunk_size)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    print_header(
        repo_path=args.repo_path,
        date_range=date_range,
        db_path=settings.db_path,
        jobs=settings.jobs,
        chunk_size=settings.chunk_size,
    )

    def progress(chunks: int, commits: int) -> None:
        if chunks % 10 == 0:
            print(f"Diffed {commits} commits ({chunks} chunks)...")

    try:
        # a path that is not a repository must not leave an empty database behind
        open_repository(args.repo_path)
        conn = connect(settings.db_path)
    except ActivityError as e:
        return _fail(e)

    try:
        ensure_schema(conn)
        result = run_activity(
            repo_path=args.repo_path,
            conn=conn,
            date_range=date_range,
            jobs=settings.jobs,
            chunk_size=settings.chunk_size,
            progress=progress,
        )
    except ActivityError as e:
        return _fail(e)
    finally:
        conn.close()

    if not result.ok:
        return _fail(result.error)

    print_warnings(result)
    print_summary(result)
    print(f"\nDone. Stored in: {settings.db_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
