"""
taxdash.config — Runtime settings resolved from environment variables.

Environment variables:
    ENV                   — "dev" or "prod" (default: "prod")
    DATA_DIR              — Region file directory (default: data/jurisdictions)
    LEGACY_DATASET_PATH   — Combined dataset file (default: data/jurisdictions.json)
    SOURCE_CSV            — Builder input (default: data/sources/final_data_2023_gdp_incomplete.csv)
    DATASET_UPDATE_TOKEN  — Shared secret for dataset edits; unset disables edits
    ALLOWED_ORIGINS       — Comma-separated extra CORS origins (default: none)
    ENABLE_DOCS           — "1" to force-enable /docs in prod
    REDIS_URL             — Optional Redis URL for distributed rate limiting
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent
DATA_ROOT: Path = PROJECT_ROOT / "data"

DEFAULT_DATA_DIR: Path = DATA_ROOT / "jurisdictions"
DEFAULT_LEGACY_PATH: Path = DATA_ROOT / "jurisdictions.json"
DEFAULT_SOURCE_CSV: Path = DATA_ROOT / "sources" / "final_data_2023_gdp_incomplete.csv"


@dataclass(frozen=True, slots=True)
class Settings:
    """Immutable runtime configuration."""

    env: str = "prod"
    data_dir: Path = DEFAULT_DATA_DIR
    legacy_path: Path = DEFAULT_LEGACY_PATH
    source_csv: Path = DEFAULT_SOURCE_CSV
    update_token: str | None = None
    allowed_origins: tuple[str, ...] = ()
    enable_docs: bool = False
    redis_url: str | None = None

    @property
    def is_dev(self) -> bool:
        return self.env == "dev"

    @property
    def updates_enabled(self) -> bool:
        return self.update_token is not None


def _path_from_env(name: str, default: Path) -> Path:
    raw = os.getenv(name, "").strip()
    return Path(raw) if raw else default


def load_settings() -> Settings:
    """Read Settings from the process environment."""
    origins_raw = os.getenv("ALLOWED_ORIGINS", "").strip()
    origins = tuple(o.strip() for o in origins_raw.split(",") if o.strip())

    # An empty token counts as unset: edits stay disabled.
    token = os.getenv("DATASET_UPDATE_TOKEN") or None

    return Settings(
        env=os.getenv("ENV", "prod").lower().strip(),
        data_dir=_path_from_env("DATA_DIR", DEFAULT_DATA_DIR),
        legacy_path=_path_from_env("LEGACY_DATASET_PATH", DEFAULT_LEGACY_PATH),
        source_csv=_path_from_env("SOURCE_CSV", DEFAULT_SOURCE_CSV),
        update_token=token,
        allowed_origins=origins,
        enable_docs=os.getenv("ENABLE_DOCS", "").strip() == "1",
        redis_url=os.getenv("REDIS_URL", "").strip() or None,
    )
