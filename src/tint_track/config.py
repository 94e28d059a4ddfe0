"""Application configuration: loads .env, then overrides from settings.json."""

import json
import os
from pathlib import Path

from dotenv import load_dotenv

# Find the project root (where .env lives)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# Runtime settings file for operator overrides
_SETTINGS_FILE = _PROJECT_ROOT / "data" / "settings.json"


def _load_settings() -> dict:
    """Load saved runtime settings from JSON file."""
    if _SETTINGS_FILE.exists():
        try:
            return json.loads(_SETTINGS_FILE.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            pass
    return {}


def _save_settings(settings: dict):
    """Persist runtime settings to JSON file."""
    _SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    _SETTINGS_FILE.write_text(
        json.dumps(settings, indent=2), encoding="utf-8"
    )


# Load saved settings once at import time
_runtime = _load_settings()


class Config:
    """Central configuration: .env defaults, settings.json overrides."""

    # Paths
    PROJECT_ROOT: Path = _PROJECT_ROOT
    DATABASE_PATH: Path = Path(
        os.getenv("DATABASE_PATH", str(_PROJECT_ROOT / "data" / "tint_track.db"))
    )
    BACKUP_PATH: Path = Path(
        os.getenv("DATABASE_BACKUP_PATH", str(_PROJECT_ROOT / "data" / "backups"))
    )
    BACKUP_KEEP: int = int(os.getenv("BACKUP_KEEP", "10"))

    # Jobs
    JOB_NUMBER_PREFIX: str = _runtime.get(
        "job_number_prefix",
        os.getenv("JOB_NUMBER_PREFIX", "JOB"),
    )
    DEFAULT_TOTAL_WINDOWS: int = int(_runtime.get(
        "default_total_windows",
        os.getenv("DEFAULT_TOTAL_WINDOWS", "7"),
    ))

    # Reporting
    TOP_PERFORMERS_LIMIT: int = int(_runtime.get(
        "top_performers_limit",
        os.getenv("TOP_PERFORMERS_LIMIT", "10"),
    ))

    # Inventory
    APPROACHING_STOCK_FACTOR: float = float(_runtime.get(
        "approaching_stock_factor",
        os.getenv("APPROACHING_STOCK_FACTOR", "1.5"),
    ))
    TRANSACTION_HISTORY_LIMIT: int = int(_runtime.get(
        "transaction_history_limit",
        os.getenv("TRANSACTION_HISTORY_LIMIT", "50"),
    ))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def update_job_settings(cls, prefix: str, default_windows: int):
        """Update job numbering and window defaults and persist."""
        cls.JOB_NUMBER_PREFIX = prefix
        cls.DEFAULT_TOTAL_WINDOWS = default_windows

        settings = _load_settings()
        settings["job_number_prefix"] = prefix
        settings["default_total_windows"] = default_windows
        _save_settings(settings)

    @classmethod
    def update_inventory_settings(cls, approaching_factor: float,
                                  history_limit: int):
        """Update low-stock warning factor and ledger page size, persist."""
        cls.APPROACHING_STOCK_FACTOR = approaching_factor
        cls.TRANSACTION_HISTORY_LIMIT = history_limit

        settings = _load_settings()
        settings["approaching_stock_factor"] = approaching_factor
        settings["transaction_history_limit"] = history_limit
        _save_settings(settings)

    @classmethod
    def update_reporting_settings(cls, top_performers_limit: int):
        """Update how many installers the leaderboard shows, persist."""
        cls.TOP_PERFORMERS_LIMIT = top_performers_limit

        settings = _load_settings()
        settings["top_performers_limit"] = top_performers_limit
        _save_settings(settings)
