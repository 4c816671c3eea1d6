from __future__ import annotations

import dataclasses
import json
from pathlib import Path

from .aggregate import DEFAULT_CHUNK_SIZE, default_jobs

DEFAULT_DB_PATH = Path("repo_activity.db")


@dataclasses.dataclass(frozen=True)
class Settings:
    db_path: Path = DEFAULT_DB_PATH
    jobs: int = 1
    chunk_size: int = DEFAULT_CHUNK_SIZE


def load_config(config_path: Path) -> dict:
    if not config_path.exists():
        return {}
    data = json.loads(config_path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{config_path}: expected a JSON object")
    return data


def _positive_int(value: object, key: str) -> int:
    try:
        n = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be an integer, got {value!r}") from None
    if n < 1:
        raise ValueError(f"{key} must be >= 1, got {n}")
    return n


def resolve_settings(
    config: dict,
    *,
    db_path: Path | None = None,
    jobs: int | None = None,
    chunk_size: int | None = None,
) -> Settings:
    """Command-line values win over config.json, which wins over defaults."""
    db = db_path if db_path is not None else Path(str(config.get("db_path") or DEFAULT_DB_PATH))
    j = jobs if jobs is not None else config.get("jobs")
    if j is None:
        j = default_jobs()
    c = chunk_size if chunk_size is not None else config.get("chunk_size")
    if c is None:
        c = DEFAULT_CHUNK_SIZE
    return Settings(
        db_path=db,
        jobs=_positive_int(j, "jobs"),
        chunk_size=_positive_int(c, "chunk_size"),
    )
