# multisig/config.py
"""
Runtime settings resolved from flags and environment variables.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from multisig.core.errors import InvalidArgument

ENV_DB_PATH = "MULTISIG_DB_PATH"
ENV_LEDGER_TIMEOUT = "MULTISIG_LEDGER_TIMEOUT"
ENV_LOCK_TIMEOUT = "MULTISIG_LOCK_TIMEOUT"

DEFAULT_DB_NAME = "multisig.db"
DEFAULT_LEDGER_TIMEOUT = 30.0
DEFAULT_LOCK_TIMEOUT = 10.0


def get_db_path(db_flag: Optional[Path] = None) -> Path:
    """Resolve DB path in this order:
    1. --db flag
    2. MULTISIG_DB_PATH environment variable
    3. Default: ~/.multisig/multisig.db
    """
    if db_flag:
        path = Path(db_flag).resolve()
    else:
        env_path = os.environ.get(ENV_DB_PATH)
        if env_path:
            path = Path(env_path).resolve()
        else:
            path = Path.home() / ".multisig" / DEFAULT_DB_NAME

    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _parse_timeout(name: str, raw: Optional[str], default: float) -> Optional[float]:
    if raw is None or raw.strip() == "":
        return default
    if raw.strip().lower() in ("0", "none", "off"):
        return None
    try:
        value = float(raw)
    except ValueError:
        raise InvalidArgument(f"{name} must be a number of seconds, got {raw!r}")
    if value < 0:
        raise InvalidArgument(f"{name} must not be negative, got {raw!r}")
    return value


@dataclass(frozen=True)
class EngineSettings:
    """Bounds on how long an engine call may wait. None means wait forever."""
    ledger_timeout: Optional[float] = DEFAULT_LEDGER_TIMEOUT
    lock_timeout: Optional[float] = DEFAULT_LOCK_TIMEOUT

    def __post_init__(self):
        for name in ("ledger_timeout", "lock_timeout"):
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidArgument(f"{name} must be a number of seconds or None, got {value!r}")
            if not value >= 0:
                raise InvalidArgument(f"{name} must not be negative, got {value!r}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineSettings":
        env = os.environ if environ is None else environ
        return cls(
            ledger_timeout=_parse_timeout(
                ENV_LEDGER_TIMEOUT, env.get(ENV_LEDGER_TIMEOUT), DEFAULT_LEDGER_TIMEOUT
            ),
            lock_timeout=_parse_timeout(
                ENV_LOCK_TIMEOUT, env.get(ENV_LOCK_TIMEOUT), DEFAULT_LOCK_TIMEOUT
            ),
        )
