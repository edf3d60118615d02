"""
Engine configuration.

Values come from the environment (optionally a local .env file). Every setting
has a default so the engine runs with no configuration at all.
"""

import os
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from dotenv import load_dotenv

DEFAULT_EXPIRY_TIMEZONE = "US/Eastern"

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_list(name: str) -> FrozenSet[str]:
    value = os.getenv(name, "")
    return frozenset(v.strip() for v in value.split(",") if v.strip())


@dataclass(frozen=True)
class EngineSettings:
    """Runtime settings for the lot-matching engine and report layer"""
    expiry_timezone: str = DEFAULT_EXPIRY_TIMEZONE
    strict_invariants: bool = False
    max_workers: int = 1
    validate_trades: bool = False
    blocked_dedup_keys: FrozenSet[str] = field(default_factory=frozenset)
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "EngineSettings":
        """
        Build settings from JOURNAL_* environment variables.

        Args:
            dotenv_path: Optional explicit .env file; defaults to searching
                upward from the working directory.
        """
        load_dotenv(dotenv_path)

        return cls(
            expiry_timezone=os.getenv("JOURNAL_EXPIRY_TIMEZONE", DEFAULT_EXPIRY_TIMEZONE),
            strict_invariants=_env_bool("JOURNAL_STRICT_INVARIANTS", False),
            max_workers=max(1, _env_int("JOURNAL_MAX_WORKERS", 1)),
            validate_trades=_env_bool("JOURNAL_VALIDATE_TRADES", False),
            blocked_dedup_keys=_env_list("JOURNAL_BLOCKED_TRADE_IDS"),
            log_level=os.getenv("JOURNAL_LOG_LEVEL", "INFO").upper(),
            log_dir=os.getenv("JOURNAL_LOG_DIR") or None,
        )
