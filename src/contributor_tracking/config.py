from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "UTC"


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def resolve_timezone(name: str | None) -> ZoneInfo:
    clean = (name or "").strip() or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(clean)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown time zone: {clean!r}") from exc


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    db_path: Path
    timezone: ZoneInfo
    sweep_on_load: bool


def load_settings() -> Settings:
    data_dir = Path(os.getenv("CONTRIBUTOR_TRACKING_DATA_DIR", "./data"))
    db_path = Path(os.getenv("CONTRIBUTOR_TRACKING_DB_PATH", data_dir / "app.db"))
    return Settings(
        data_dir=data_dir,
        db_path=db_path,
        timezone=resolve_timezone(os.getenv("CONTRIBUTOR_TRACKING_TIMEZONE")),
        sweep_on_load=_parse_bool(os.getenv("CONTRIBUTOR_TRACKING_SWEEP_ON_LOAD"), default=True),
    )
