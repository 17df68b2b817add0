# -*- codeing = utf-8 -*-
# @Create: 2026-10-18 9:12 a.m.
# @Update: 2026-10-18 9:12 a.m.
"""Load the sitemon INI configuration into an immutable ``Settings`` value."""

from __future__ import annotations

import configparser
import logging
import os
import re
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple, Union

LOGGER = logging.getLogger(__name__)

CONFIG_PATH_ENV = "SITEMON_CONFIG"
DEFAULT_CONFIG_CANDIDATES = (
    Path("sitemon.ini"),
    Path("/etc/sitemon/sitemon.ini"),
)

MONITOR_SECTION = "Monitor"
TELEGRAM_SECTION = "Telegram"
REQUEST_SECTION = "Request"
LOGGING_SECTION = "Logging"

TELEGRAM_ENV_MAP = {
    "token": "TELEGRAM_TOKEN",
    "chat_id": "TELEGRAM_CHAT_ID",
    "enabled": "TELEGRAM_ENABLED",
}
REQUEST_TIMEOUT_ENV = "REQUEST_TIMEOUT"
INTERVAL_ENV = "SITEMON_INTERVAL"

DEFAULT_INTERVAL = 60
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_TELEGRAM_TIMEOUT = 10.0
DEFAULT_LOG_DIRECTORY = "log"
DEFAULT_AGGREGATE_LOG = "sitemon.log"

_BOOL_TRUE_VALUES = {"1", "true", "yes", "on"}
_BOOL_FALSE_VALUES = {"0", "false", "no", "off"}

_LOG_HANDLER_FLAG = "_sitemon_managed"
_LOG_HANDLER_KIND = "_sitemon_kind"
_LOG_HANDLER_FILE = "file"
_LOG_HANDLER_CONSOLE = "console"
_DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DEFAULT_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
_DEFAULT_LOG_MAX_BYTES = 10 * 1024 * 1024
_DEFAULT_LOG_BACKUP_COUNT = 5

_SITE_SPLIT_PATTERN = re.compile(r"[,\n]")
_SCHEME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


@dataclass(frozen=True)
class SiteConfig:
    """Describe a single monitored site."""

    identifier: str
    interval: int

    @property
    def url(self) -> str:
        if _SCHEME_PATTERN.match(self.identifier):
            return self.identifier
        return f"http://{self.identifier}"


@dataclass(frozen=True)
class TelegramSettings:
    enabled: bool = False
    token: str = ""
    chat_id: str = ""
    timeout: float = DEFAULT_TELEGRAM_TIMEOUT

    def redacted_token(self) -> str:
        if not self.token:
            return ""
        return "<redacted>"


@dataclass(frozen=True)
class LoggingSettings:
    """Represent the parsed diagnostic logging configuration values."""

    level_name: str = "INFO"
    level: int = logging.INFO
    file_path: Optional[Path] = None
    max_bytes: int = _DEFAULT_LOG_MAX_BYTES
    backup_count: int = _DEFAULT_LOG_BACKUP_COUNT
    fmt: str = _DEFAULT_LOG_FORMAT
    datefmt: Optional[str] = _DEFAULT_LOG_DATEFMT
    console: bool = True


@dataclass(frozen=True)
class Settings:
    """Everything the supervisor and its monitors need, resolved once."""

    sites: Tuple[SiteConfig, ...]
    interval: int
    log_dir: Path
    aggregate_log: Path
    flush_log_on_start: bool
    telegram: TelegramSettings
    request_timeout: float
    logging: LoggingSettings
    source: Optional[Path] = None

    def as_dict(self) -> Dict[str, object]:
        """Return a printable view with credentials redacted."""

        return {
            "source": str(self.source) if self.source else None,
            "sites": [site.identifier for site in self.sites],
            "interval": self.interval,
            "log_dir": str(self.log_dir),
            "aggregate_log": str(self.aggregate_log),
            "flush_log_on_start": self.flush_log_on_start,
            "request_timeout": self.request_timeout,
            "telegram": {
                "enabled": self.telegram.enabled,
                "token": self.telegram.redacted_token(),
                "chat_id": self.telegram.chat_id,
                "timeout": self.telegram.timeout,
            },
            "logging": {
                "level": self.logging.level_name,
                "file": str(self.logging.file_path)
                if self.logging.file_path else None,
                "console": self.logging.console,
            },
        }


def resolve_config_path(
    explicit: Union[str, os.PathLike, None] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Optional[Path]:
    """Locate the configuration file.

    Priority order:
    1. The explicit path (``--config``); it must exist.
    2. Environment variable ``SITEMON_CONFIG``; it must exist.
    3. ``sitemon.ini`` in the working directory, then
       ``/etc/sitemon/sitemon.ini``.
    """

    env = os.environ if environ is None else environ
    for candidate, origin in ((explicit, "--config"),
                              (env.get(CONFIG_PATH_ENV), CONFIG_PATH_ENV)):
        if not candidate:
            continue
        path = Path(candidate).expanduser()
        if not path.is_file():
            raise FileNotFoundError(
                f"Configuration file from {origin} does not exist: {path}")
        return path.resolve()

    for path in DEFAULT_CONFIG_CANDIDATES:
        if path.is_file():
            return path.resolve()
    return None


def load_settings(path: Union[str, os.PathLike, None] = None,
                  *,
                  environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Read, validate, and freeze the configuration."""

    env = os.environ if environ is None else environ
    config_path = resolve_config_path(path, environ=env)

    parser = configparser.RawConfigParser(inline_comment_prefixes=(";", ))
    if config_path is not None:
        parser.read(os.fspath(config_path), encoding="utf-8")
        base_dir = config_path.parent
    else:
        LOGGER.warning("config.missing searched=%s",
                       ", ".join(map(str, DEFAULT_CONFIG_CANDIDATES)))
        base_dir = Path.cwd()

    raw_interval = env.get(INTERVAL_ENV) or _option(
        parser, MONITOR_SECTION, "interval", str(DEFAULT_INTERVAL))
    try:
        interval = _parse_int_option(raw_interval,
                                     default=DEFAULT_INTERVAL,
                                     minimum=1)
    except ValueError as exc:
        raise ValueError(
            f"[{MONITOR_SECTION}].interval is invalid: {raw_interval!r}"
        ) from exc

    identifiers = parse_site_list(_option(parser, MONITOR_SECTION, "sites"))
    if not identifiers:
        raise ValueError(f"[{MONITOR_SECTION}].sites must not be empty")
    sites = tuple(SiteConfig(identifier, interval) for identifier in identifiers)

    log_dir = _resolve_path(
        _option(parser, MONITOR_SECTION, "log_dir", DEFAULT_LOG_DIRECTORY)
        or DEFAULT_LOG_DIRECTORY, base_dir)
    aggregate_log = _resolve_path(
        _option(parser, MONITOR_SECTION, "log_file", DEFAULT_AGGREGATE_LOG)
        or DEFAULT_AGGREGATE_LOG, log_dir)

    raw_flush = _option(parser, MONITOR_SECTION, "flush_log_on_start",
                        "false")
    try:
        flush_log_on_start = _parse_bool_option(raw_flush, default=False)
    except ValueError as exc:
        raise ValueError(
            f"[{MONITOR_SECTION}].flush_log_on_start is invalid: {raw_flush!r}"
        ) from exc

    return Settings(
        sites=sites,
        interval=interval,
        log_dir=log_dir,
        aggregate_log=aggregate_log,
        flush_log_on_start=flush_log_on_start,
        telegram=_load_telegram_settings(parser, env),
        request_timeout=_load_request_timeout(parser, env),
        logging=_load_logging_settings(parser, log_dir),
        source=config_path,
    )


def parse_site_list(raw_value: Optional[str]) -> List[str]:
    """Split a comma/newline separated site list, keeping order, dropping duplicates."""

    if not raw_value:
        return []
    sites: List[str] = []
    for chunk in _SITE_SPLIT_PATTERN.split(raw_value):
        identifier = chunk.strip()
        if identifier and identifier not in sites:
            sites.append(identifier)
    return sites


def _option(parser: configparser.RawConfigParser,
            section: str,
            option: str,
            fallback: str = "") -> str:
    if not parser.has_section(section):
        return fallback
    return parser.get(section, option, fallback=fallback)


def _resolve_path(raw_value: str, base_dir: Path) -> Path:
    path = Path(raw_value.strip()).expanduser()
    if not path.is_absolute():
        path = Path(base_dir) / path
    return path.resolve()


def _load_telegram_settings(parser: configparser.RawConfigParser,
                            env: Mapping[str, str]) -> TelegramSettings:
    values: Dict[str, str] = {}
    for key, env_name in TELEGRAM_ENV_MAP.items():
        env_value = env.get(env_name)
        if env_value:
            values[key] = env_value
        else:
            values[key] = _option(parser, TELEGRAM_SECTION, key)

    try:
        enabled = _parse_bool_option(values["enabled"], default=False)
    except ValueError as exc:
        raise ValueError(
            f"[{TELEGRAM_SECTION}].enabled is invalid: {values['enabled']!r}"
        ) from exc

    raw_timeout = _option(parser, TELEGRAM_SECTION, "timeout",
                          str(DEFAULT_TELEGRAM_TIMEOUT))
    try:
        timeout = _parse_positive_float(raw_timeout,
                                        default=DEFAULT_TELEGRAM_TIMEOUT)
    except ValueError as exc:
        raise ValueError(
            f"[{TELEGRAM_SECTION}].timeout is invalid: {raw_timeout!r}"
        ) from exc

    token = values["token"].strip()
    chat_id = values["chat_id"].strip()
    if enabled:
        for key, value in (("token", token), ("chat_id", chat_id)):
            if not value:
                raise ValueError(
                    f"[{TELEGRAM_SECTION}].{key} is required when notifications are enabled"
                )
            if value.startswith("<") and value.endswith(">"):
                raise ValueError(
                    f"[{TELEGRAM_SECTION}].{key} still holds the placeholder {value!r}"
                )

    return TelegramSettings(enabled=enabled,
                            token=token,
                            chat_id=chat_id,
                            timeout=timeout)


def _load_request_timeout(parser: configparser.RawConfigParser,
                          env: Mapping[str, str]) -> float:
    env_timeout = env.get(REQUEST_TIMEOUT_ENV)
    if env_timeout:
        try:
            return _parse_positive_float(env_timeout,
                                         default=DEFAULT_REQUEST_TIMEOUT)
        except ValueError as exc:
            raise ValueError(
                f"Environment variable {REQUEST_TIMEOUT_ENV} must be a positive number."
            ) from exc

    raw_timeout = _option(parser, REQUEST_SECTION, "timeout",
                          str(DEFAULT_REQUEST_TIMEOUT))
    try:
        return _parse_positive_float(raw_timeout,
                                     default=DEFAULT_REQUEST_TIMEOUT)
    except ValueError as exc:
        raise ValueError(
            f"[{REQUEST_SECTION}].timeout is invalid: {raw_timeout!r}"
        ) from exc


def _load_logging_settings(parser: configparser.RawConfigParser,
                           log_dir: Path) -> LoggingSettings:
    raw_level = _option(parser, LOGGING_SECTION, "log_level", "INFO")
    try:
        level_name, level_value = _parse_log_level(raw_level, default="INFO")
    except ValueError as exc:
        raise ValueError(
            f"[{LOGGING_SECTION}].log_level is invalid: {raw_level!r}") from exc

    raw_max_size = _option(parser, LOGGING_SECTION, "log_max_size")
    try:
        max_bytes = _parse_size_value(raw_max_size,
                                      default=_DEFAULT_LOG_MAX_BYTES)
    except ValueError as exc:
        raise ValueError(
            f"[{LOGGING_SECTION}].log_max_size is invalid: {raw_max_size!r}"
        ) from exc

    raw_backup_count = _option(parser, LOGGING_SECTION, "log_backup_count",
                               str(_DEFAULT_LOG_BACKUP_COUNT))
    try:
        backup_count = _parse_int_option(raw_backup_count,
                                         default=_DEFAULT_LOG_BACKUP_COUNT,
                                         minimum=0)
    except ValueError as exc:
        raise ValueError(
            f"[{LOGGING_SECTION}].log_backup_count is invalid: {raw_backup_count!r}"
        ) from exc

    raw_console = _option(parser, LOGGING_SECTION, "log_console", "true")
    try:
        console_enabled = _parse_bool_option(raw_console, default=True)
    except ValueError as exc:
        raise ValueError(
            f"[{LOGGING_SECTION}].log_console is invalid: {raw_console!r}"
        ) from exc

    raw_file = _option(parser, LOGGING_SECTION, "log_file").strip()
    file_path = _resolve_path(raw_file, log_dir) if raw_file else None

    log_format = _option(parser, LOGGING_SECTION, "log_format",
                         _DEFAULT_LOG_FORMAT).strip() or _DEFAULT_LOG_FORMAT
    log_datefmt = _option(parser, LOGGING_SECTION, "log_datefmt",
                          _DEFAULT_LOG_DATEFMT).strip() or _DEFAULT_LOG_DATEFMT

    return LoggingSettings(
        level_name=level_name,
        level=level_value,
        file_path=file_path,
        max_bytes=max_bytes,
        backup_count=backup_count,
        fmt=log_format,
        datefmt=log_datefmt,
        console=console_enabled,
    )


def _parse_log_level(value: object,
                     *,
                     default: str = "INFO") -> Tuple[str, int]:
    text = str(value).strip() if value is not None else ""
    if not text:
        text = default
    normalised = text.upper()
    aliases = {
        "WARN": "WARNING",
        "FATAL": "CRITICAL",
        "TRACE": "NOTSET",
    }
    mapped = aliases.get(normalised, normalised)
    level_value = getattr(logging, mapped, None)
    if isinstance(level_value, int):
        return mapped, level_value
    try:
        numeric_level = int(text)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Unable to parse log level: {value!r}") from exc
    if numeric_level < 0:
        raise ValueError(
            f"Log level must be a non-negative integer: {numeric_level}")
    level_name = logging.getLevelName(numeric_level)
    if not isinstance(level_name, str):
        level_name = str(numeric_level)
    return level_name.upper(), numeric_level


_SIZE_UNITS = {
    "B": 1,
    "KB": 1024,
    "MB": 1024**2,
    "GB": 1024**3,
}


def _parse_size_value(value: object,
                      *,
                      default: int = _DEFAULT_LOG_MAX_BYTES) -> int:
    text = str(value).strip() if value is not None else ""
    if not text:
        return max(int(default), 0)
    match = re.fullmatch(r"\s*(\d+(?:\.\d+)?)\s*([kmg]?b)?\s*",
                         text,
                         flags=re.IGNORECASE)
    if not match:
        raise ValueError(f"Unable to parse log size: {value!r}")
    number = float(match.group(1))
    unit = match.group(2) or "B"
    return max(int(number * _SIZE_UNITS[unit.upper()]), 0)


def _parse_bool_option(value: object, *, default: bool = True) -> bool:
    if value is None:
        return default
    text = str(value).strip().lower()
    if not text:
        return default
    if text in _BOOL_TRUE_VALUES:
        return True
    if text in _BOOL_FALSE_VALUES:
        return False
    raise ValueError(f"Unable to parse boolean value: {value!r}")


def _parse_int_option(
    value: object,
    *,
    default: int,
    minimum: Optional[int] = None,
) -> int:
    text = str(value).strip() if value is not None else ""
    if not text:
        result = int(default)
    else:
        try:
            result = int(text)
        except (TypeError, ValueError) as exc:
            raise ValueError(
                f"Unable to parse integer value: {value!r}") from exc
    if minimum is not None and result < minimum:
        raise ValueError(
            f"Value {result} is smaller than the minimum {minimum}")
    return result


def _parse_positive_float(value: object, *, default: float) -> float:
    text = str(value).strip() if value is not None else ""
    if not text:
        return float(default)
    try:
        result = float(text)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Unable to parse number: {value!r}") from exc
    if result <= 0:
        raise ValueError(f"Value must be positive: {result}")
    return result


def configure_logging(
    settings: LoggingSettings,
    *,
    replace_existing: bool = False,
) -> LoggingSettings:
    """Install sitemon's diagnostic log handlers on the root logger.

    :param settings: The parsed ``[Logging]`` section.
    :param replace_existing: Remove previously installed sitemon handlers first.
    :return: The applied ``LoggingSettings``.
    """

    root_logger = logging.getLogger()
    root_logger.setLevel(settings.level)

    if replace_existing:
        reset_logging_configuration()

    managed = {
        getattr(handler, _LOG_HANDLER_KIND, None): handler
        for handler in root_logger.handlers
        if getattr(handler, _LOG_HANDLER_FLAG, False)
    }
    formatter = logging.Formatter(settings.fmt, settings.datefmt or None)

    if settings.file_path is not None and _LOG_HANDLER_FILE not in managed:
        settings.file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.fspath(settings.file_path),
            maxBytes=settings.max_bytes,
            backupCount=settings.backup_count,
            encoding="utf-8",
        )
        _install_handler(root_logger, file_handler, _LOG_HANDLER_FILE,
                         settings.level, formatter)

    if settings.console and _LOG_HANDLER_CONSOLE not in managed:
        _install_handler(root_logger, logging.StreamHandler(),
                         _LOG_HANDLER_CONSOLE, settings.level, formatter)

    return settings


def _install_handler(root_logger: logging.Logger, handler: logging.Handler,
                     kind: str, level: int,
                     formatter: logging.Formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    setattr(handler, _LOG_HANDLER_FLAG, True)
    setattr(handler, _LOG_HANDLER_KIND, kind)
    root_logger.addHandler(handler)


def reset_logging_configuration() -> None:
    """Remove handlers previously added by ``configure_logging``."""

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if getattr(handler, _LOG_HANDLER_FLAG, False):
            root_logger.removeHandler(handler)
            try:
                handler.close()
            except Exception:  # pragma: no cover - best effort cleanup
                pass
