# -*- codeing = utf-8 -*-
# @Create: 2026-10-18 9:52 a.m.
# @Update: 2026-10-18 9:52 a.m.
import datetime
import logging
import re
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

LOGGER = logging.getLogger(__name__)

_FALLBACK_SITE_FILENAME = "site"
LOG_EXTENSION = ".log"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def _sanitize_site_name(identifier) -> str:
    """Turn a site identifier into a file name that stays inside the log folder."""

    candidate = "" if identifier is None else str(identifier)
    # One underscore per separator so distinct identifiers keep distinct files.
    candidate = re.sub(r"[\\/]", "_", candidate).strip()
    if not candidate or candidate in {".", ".."}:
        return _FALLBACK_SITE_FILENAME
    return candidate


def site_log_path(log_dir: Union[str, Path], identifier) -> Path:
    return Path(log_dir) / f"{_sanitize_site_name(identifier)}{LOG_EXTENSION}"


def format_line(message: str, when: datetime.datetime) -> str:
    return f"[{when.strftime(TIMESTAMP_FORMAT)}] {str(message).rstrip()}"


class LogRecorder:
    """Append-only writer for per-site and aggregate log files.

    Appends to the same path are serialised with a per-path lock so lines from
    concurrent monitors never interleave. A failed write is logged and
    dropped; it never reaches the caller.
    """

    def __init__(
        self,
        *,
        clock: Optional[Callable[[], datetime.datetime]] = None,
        echo: bool = True,
    ) -> None:
        self._clock = clock or datetime.datetime.now
        self._echo = echo
        self._locks: Dict[Path, Any] = {}
        self._locks_guard = threading.RLock()

    def _lock_for(self, path: Path):
        key = path.resolve()
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    def append(self,
               path: Union[str, Path],
               message: str,
               when: Optional[datetime.datetime] = None,
               *,
               quiet: bool = False) -> Optional[str]:
        """Append one timestamped line; return it, or ``None`` if the write failed."""

        path = Path(path)
        line = format_line(message, when or self._clock())
        try:
            with self._lock_for(path):
                path.parent.mkdir(parents=True, exist_ok=True)
                with path.open("a", encoding="utf-8") as file:
                    file.write(line + "\n")
        except OSError as exc:
            LOGGER.exception("log.append.error path=%s error=%s", path, exc)
            return None

        if self._echo and not quiet:
            LOGGER.info("%s", line)
        return line

    def truncate(self, path: Union[str, Path]) -> bool:
        path = Path(path)
        try:
            with self._lock_for(path):
                path.parent.mkdir(parents=True, exist_ok=True)
                with path.open("w", encoding="utf-8"):
                    pass
        except OSError as exc:
            LOGGER.exception("log.truncate.error path=%s error=%s", path, exc)
            return False
        return True
