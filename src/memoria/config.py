"""
Memoria configuration -- environment-driven settings resolved once at startup.

Every value that used to be a process-wide flag (storage mode, thresholds,
maintenance cadence) lives on MemoriaConfig and is passed explicitly to the
components that need it.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional
from urllib.parse import unquote, urlparse

from memoria.errors import ConfigurationError

logger = logging.getLogger("memoria.config")

# Similarity thresholds per call site
DEFAULT_RELEVANCE_THRESHOLD = 0.5  # context partitions (RelevanceScorer)
DEFAULT_SEMANTIC_THRESHOLD = 0.6  # semantic partition of the context snapshot
DEFAULT_SEARCH_THRESHOLD = 0.7  # searchVectors tool default

DEFAULT_DIMENSIONS = 128
DEFAULT_MAINTENANCE_INTERVAL_MIN = 60
DEFAULT_TASK_DELAY_S = 0.1

MEMORY_URL = ":memory:"

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class StorageMode(str, Enum):
    """Where records live for the lifetime of the process."""
    PERSISTENT = "persistent"
    EPHEMERAL = "ephemeral"


def _default_home() -> Path:
    return Path.home() / ".memoria"


@dataclass(frozen=True)
class MemoriaConfig:
    """Resolved settings. Build with from_env() or construct directly in tests."""

    home: Path = field(default_factory=_default_home)
    db_path: Optional[Path] = None  # None => in-memory database
    mode: StorageMode = StorageMode.PERSISTENT
    dimensions: int = DEFAULT_DIMENSIONS
    relevance_threshold: float = DEFAULT_RELEVANCE_THRESHOLD
    semantic_threshold: float = DEFAULT_SEMANTIC_THRESHOLD
    search_threshold: float = DEFAULT_SEARCH_THRESHOLD
    maintenance_interval_min: float = DEFAULT_MAINTENANCE_INTERVAL_MIN
    task_delay_s: float = DEFAULT_TASK_DELAY_S
    log_level: str = "WARNING"

    @property
    def database(self) -> str:
        """Connection target for sqlite."""
        if self.mode is StorageMode.EPHEMERAL or self.db_path is None:
            return MEMORY_URL
        return str(self.db_path)

    def with_overrides(self, **changes) -> "MemoriaConfig":
        return replace(self, **changes)

    @classmethod
    def ephemeral(cls, **overrides) -> "MemoriaConfig":
        """In-memory configuration, mostly for tests and one-off CLI runs."""
        return cls(db_path=None, mode=StorageMode.EPHEMERAL, **overrides)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "MemoriaConfig":
        env = os.environ if environ is None else environ
        home = Path(env.get("MEMORIA_HOME", str(_default_home()))).expanduser()
        db_path, mode = parse_db_url(env.get("MEMORIA_DB_URL"), home)

        log_level = env.get("MEMORIA_LOG_LEVEL", "WARNING").strip().upper()
        if log_level not in _LOG_LEVELS:
            raise ConfigurationError(f"MEMORIA_LOG_LEVEL has unknown level {log_level!r}")

        return cls(
            home=home,
            db_path=db_path,
            mode=mode,
            dimensions=int(_number(env, "MEMORIA_DIMENSIONS", DEFAULT_DIMENSIONS, 1, 4096, integer=True)),
            relevance_threshold=_number(env, "MEMORIA_RELEVANCE_THRESHOLD", DEFAULT_RELEVANCE_THRESHOLD, -1.0, 1.0),
            semantic_threshold=_number(env, "MEMORIA_SEMANTIC_THRESHOLD", DEFAULT_SEMANTIC_THRESHOLD, -1.0, 1.0),
            search_threshold=_number(env, "MEMORIA_SEARCH_THRESHOLD", DEFAULT_SEARCH_THRESHOLD, -1.0, 1.0),
            maintenance_interval_min=_number(
                env, "MEMORIA_MAINTENANCE_INTERVAL", DEFAULT_MAINTENANCE_INTERVAL_MIN, 0.0, 7 * 24 * 60
            ),
            task_delay_s=_number(env, "MEMORIA_TASK_DELAY", DEFAULT_TASK_DELAY_S, 0.0, 60.0),
            log_level=log_level,
        )


def parse_db_url(url: Optional[str], home: Path):
    """Resolve MEMORIA_DB_URL to (path, mode).

    Accepts ``file:`` URLs, bare filesystem paths and ``:memory:``. Remote
    schemes are rejected.
    """
    if url is None or not url.strip():
        return home / "memoria.db", StorageMode.PERSISTENT

    url = url.strip()
    if url == MEMORY_URL or url == "file::memory:":
        return None, StorageMode.EPHEMERAL

    if url.startswith("file:"):
        parsed = urlparse(url)
        raw = unquote(parsed.path or url[len("file:"):])
        if parsed.netloc and parsed.netloc != "localhost":
            raw = "//" + parsed.netloc + raw
        if not raw:
            raise ConfigurationError(f"MEMORIA_DB_URL has no path: {url!r}")
        return Path(raw).expanduser(), StorageMode.PERSISTENT

    if "://" in url:
        scheme = url.split("://", 1)[0]
        raise ConfigurationError(
            f"Unsupported database URL scheme {scheme}://. Use a file: URL, a path, or :memory:"
        )

    return Path(url).expanduser(), StorageMode.PERSISTENT


def _number(env: Mapping[str, str], name: str, default: float, lo: float, hi: float, integer: bool = False) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw) if integer else float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
    if not lo <= value <= hi:
        raise ConfigurationError(f"{name} must be between {lo} and {hi}, got {value}")
    return value
