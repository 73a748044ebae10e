#!/usr/bin/env python3
"""
Structured logging for grokline, configured from the ``logging`` section of
grokline.json.

Settings resolve in this order: explicit arguments, then environment variables
(GROKLINE_LOG_LEVEL, GROKLINE_LOG_OUTPUT, GROKLINE_LOG_FORMAT), then the config
file, then the built-in defaults. Records carry the current LogContext (the
pattern being compiled, the input being matched) in both output formats.
"""
from __future__ import annotations

import json
import logging
import logging.handlers
import sys
from contextvars import ContextVar
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

from .config import DEFAULT_CONFIG, ConfigLoader, ConfigurationError, get_config

_log_context: ContextVar[Dict[str, Any]] = ContextVar("grokline_log_context", default={})

# Attributes every LogRecord has; anything else was passed through extra=
_RECORD_ATTRIBUTES = frozenset(vars(logging.makeLogRecord({}))) | {"message", "context", "taskName"}


@dataclass(frozen=True)
class LogSettings:
    level: str = "INFO"
    console: bool = True
    file: bool = False
    json_format: bool = False

    @classmethod
    def from_config(cls, config: Optional[ConfigLoader] = None) -> "LogSettings":
        """
        Settings from the config's logging section with environment overrides.

        A config file that cannot be loaded yields the built-in defaults here;
        the same error is raised again wherever the config itself is needed.
        """
        try:
            config = config or get_config()
            return cls(
                level=config.log_level,
                console=config.log_console,
                file=config.log_file,
                json_format=config.log_json,
            )
        except ConfigurationError:
            defaults = DEFAULT_CONFIG["logging"]
            return cls(defaults["level"], defaults["console"], defaults["file"], defaults["json"])


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, or a readable pipe-separated line."""

    def __init__(self, use_json: bool = False):
        super().__init__()
        self.use_json = use_json

    def format(self, record: logging.LogRecord) -> str:
        context = {**_log_context.get(), **(getattr(record, "context", None) or {})}
        if self.use_json:
            return self._format_json(record, context)
        return self._format_readable(record, context)

    def _format_json(self, record: logging.LogRecord, context: Dict[str, Any]) -> str:
        entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update((key, value) for key, value in vars(record).items() if key not in _RECORD_ATTRIBUTES)
        return json.dumps(entry, default=str)

    def _format_readable(self, record: logging.LogRecord, context: Dict[str, Any]) -> str:
        line = (
            f"{self.formatTime(record, datefmt='%Y-%m-%d %H:%M:%S')} | {record.levelname:5} | "
            f"{record.name} | {record.getMessage()}"
        )
        if context:
            line += " | " + " ".join(f"{key}={value}" for key, value in context.items())
        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"
        return line


class ContextLogger(logging.LoggerAdapter):
    """Adapter that attaches the active LogContext plus per-call context to each record."""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple[str, Dict[str, Any]]:
        extra = kwargs.setdefault("extra", {})
        extra["context"] = {**_log_context.get(), **self.extra, **extra.pop("context", {})}
        return msg, kwargs


def setup_structured_logging(
    name: str,
    log_level: Optional[str] = None,
    console: Optional[bool] = None,
    file: Optional[bool] = None,
    json_format: Optional[bool] = None,
    context: Optional[Dict[str, Any]] = None,
    config: Optional[ConfigLoader] = None,
) -> ContextLogger:
    """
    Configure the named logger once and wrap it in a ContextLogger.

    Args:
        name: Logger name (typically __name__)
        log_level: Level override (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        console: Log to stdout/stderr; None uses the configured value
        file: Log to a rotating file under <project_dir>/logs; None uses the configured value
        json_format: Emit JSON records; None uses the configured value
        context: Context included in every record from this logger
        config: Config to read defaults from instead of the global one
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return ContextLogger(logger, context)

    settings = LogSettings.from_config(config)
    overrides = {"level": log_level, "console": console, "file": file, "json_format": json_format}
    settings = replace(settings, **{key: value for key, value in overrides.items() if value is not None})

    logger.setLevel(getattr(logging, settings.level.upper(), logging.INFO))
    formatter = StructuredFormatter(use_json=settings.json_format)
    if settings.console:
        _add_console_handlers(logger, formatter)
    if settings.file:
        _add_file_handler(logger, formatter, name, config)
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    logger.propagate = False
    return ContextLogger(logger, context)


def _add_console_handlers(logger: logging.Logger, formatter: StructuredFormatter) -> None:
    # Below WARNING to stdout, WARNING and above to stderr
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    stdout_handler.addFilter(lambda record: record.levelno < logging.WARNING)
    logger.addHandler(stdout_handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(formatter)
    stderr_handler.setLevel(logging.WARNING)
    logger.addHandler(stderr_handler)


def _add_file_handler(
    logger: logging.Logger, formatter: StructuredFormatter, name: str, config: Optional[ConfigLoader]
) -> None:
    try:
        project_dir = (config or get_config()).project_dir
    except ConfigurationError:
        project_dir = str(Path.cwd())
    logs_dir = Path(project_dir) / "logs"
    logs_dir.mkdir(exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        logs_dir / f"{name.rsplit('.', 1)[-1]}.log",
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)


def get_context() -> Dict[str, Any]:
    """Copy of the logging context of the current thread or task."""
    return dict(_log_context.get())


class LogContext:
    """
    Adds key-value context to every record logged inside the block.

    Usage:
        with LogContext(source="access.log", pattern="%{SYSLOGLINE}"):
            logger.info("Matching lines")
    """

    def __init__(self, **kwargs: Any):
        self.values = kwargs
        self._token = None

    def __enter__(self) -> "LogContext":
        self._token = _log_context.set({**_log_context.get(), **self.values})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        _log_context.reset(self._token)


def get_logger(
    name: str,
    log_level: Optional[str] = None,
    include_console: Optional[bool] = None,
    include_file: Optional[bool] = None,
    context: Optional[Dict[str, Any]] = None,
) -> ContextLogger:
    """Structured logger; flags left as None follow the logging config."""
    return setup_structured_logging(
        name,
        log_level=log_level,
        console=include_console,
        file=include_file,
        context=context,
    )


def set_package_log_level(level: str, prefix: str = "grokline") -> None:
    """Change the level of every logger already created under prefix."""
    resolved = getattr(logging, level.upper(), logging.INFO)
    for name in list(logging.root.manager.loggerDict):
        if name == prefix or name.startswith(prefix + "."):
            logging.getLogger(name).setLevel(resolved)
