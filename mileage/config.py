"""Settings read from the environment."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ValidationError

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def _env_flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValidationError(f"{name} must be true or false, got {raw!r}")


@dataclass
class Settings:
    """
    Runtime settings.

    Attributes:
        store_path: YAML store file. None keeps records in memory.
        owner_id: Owner whose vehicles the CLI operates on.
        log_level: Minimum loguru level.
        log_file: Optional log file sink.
        strict_decode: Reject malformed numeric fields instead of reading 0.
        heal_on_refresh: Write corrected totals back to the store on refresh.
    """

    store_path: Optional[str] = None
    owner_id: str = "local"
    log_level: str = "INFO"
    log_file: Optional[str] = None
    strict_decode: bool = False
    heal_on_refresh: bool = True

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from MILEAGE_* environment variables."""
        if env is None:
            env = os.environ
        return cls(
            store_path=env.get("MILEAGE_STORE") or None,
            owner_id=env.get("MILEAGE_OWNER") or "local",
            log_level=env.get("MILEAGE_LOG_LEVEL") or "INFO",
            log_file=env.get("MILEAGE_LOG_FILE") or None,
            strict_decode=_env_flag(env, "MILEAGE_STRICT_DECODE", False),
            heal_on_refresh=_env_flag(env, "MILEAGE_HEAL_ON_REFRESH", True),
        )
