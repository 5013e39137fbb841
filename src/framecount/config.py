import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .constants import BYTES_PER_MB

DEFAULT_MAX_FILE_SIZE_MB = 100
DEFAULT_WORKER_TIMEOUT_SECONDS = 30
DEFAULT_LOG_LEVEL = "INFO"


def _positive_int(value: Optional[str], default: Optional[int], allow_zero: bool = False) -> Optional[int]:
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value.strip(), 10)
    except ValueError:
        return default
    if parsed > 0 or (allow_zero and parsed == 0):
        return parsed
    return default


@dataclass
class Settings:
    """Runtime settings, read from the environment by ``from_env``."""
    max_file_size: int = DEFAULT_MAX_FILE_SIZE_MB * BYTES_PER_MB  # bytes
    max_workers: int = os.cpu_count() or 1  # 0 runs the scanner in-process
    worker_timeout: float = DEFAULT_WORKER_TIMEOUT_SECONDS  # seconds
    max_pending: Optional[int] = None
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = None) -> "Settings":
        env = os.environ if environ is None else environ
        size_mb = _positive_int(env.get("MAX_FILE_SIZE"), DEFAULT_MAX_FILE_SIZE_MB)
        level = (env.get("LOG_LEVEL") or DEFAULT_LOG_LEVEL).strip().upper()
        return cls(
            max_file_size=size_mb * BYTES_PER_MB,
            max_workers=_positive_int(env.get("WORKER_THREADS"), os.cpu_count() or 1, allow_zero=True),
            worker_timeout=_positive_int(env.get("WORKER_TIMEOUT"), DEFAULT_WORKER_TIMEOUT_SECONDS),
            max_pending=_positive_int(env.get("WORKER_QUEUE_LIMIT"), None),
            log_level=level,
        )
