from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

DATA_DIR = Path(__file__).parent / "data"


class Settings(BaseModel):
    """Scoring thresholds and runtime settings.

    Defaults are the production contract. A YAML file named by
    ``RISKMATCH_CONFIG`` can override any field; single environment variables
    win over the file.
    """

    database_path: Path = Field(default_factory=lambda: DATA_DIR / "riskmatch.db")

    # Answers scoring strictly below this become gap candidates (0-5 scale).
    gap_threshold: float = Field(3.0, ge=0.0, le=5.0)
    # Vendor minimum price may exceed the budget maximum by this factor for half credit.
    price_tolerance: float = Field(1.25, ge=1.0)
    # Default floor for listing vendor matches.
    match_threshold: float = Field(80.0, ge=0.0, le=140.0)
    top_vendor_limit: int = Field(3, ge=1)
    vendor_match_limit: int = Field(15, ge=1)


_ENV_OVERRIDES = {
    "RISKMATCH_DB_PATH": "database_path",
    "RISKMATCH_GAP_THRESHOLD": "gap_threshold",
    "RISKMATCH_PRICE_TOLERANCE": "price_tolerance",
    "RISKMATCH_MATCH_THRESHOLD": "match_threshold",
}


def load_settings(config_path: str | Path | None = None, environ: dict[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ
    values: dict[str, Any] = {}
    path = config_path or env.get("RISKMATCH_CONFIG", "").strip()
    if path:
        with open(Path(path).expanduser(), encoding="utf-8") as fh:
            values.update(yaml.safe_load(fh) or {})
    for var, key in _ENV_OVERRIDES.items():
        raw = env.get(var, "").strip()
        if raw:
            values[key] = raw
    return Settings(**values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
