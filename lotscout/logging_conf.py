"""Structured logging: structlog events written as JSON lines by python-json-logger.

Everything lands under ``$LOTSCOUT_HOME/logs``:

* ``lotscout.log`` - every application event,
* ``error.log`` - errors only,
* ``sources/<name>.log`` - events of one crawl source.
"""

from __future__ import annotations

import logging
import logging.config
import os
import threading
from dataclasses import dataclass
from pathlib import Path

import structlog

APP_LOGGER = "lotscout"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_configured = False
_lock = threading.RLock()


@dataclass(frozen=True)
class LogLayout:
    root: Path

    @classmethod
    def current(cls) -> "LogLayout":
        home = os.environ.get("LOTSCOUT_HOME")
        base = Path(home).expanduser() if home else Path.cwd()
        return cls(base.resolve() / "logs")

    @property
    def app_log(self) -> Path:
        return self.root / "lotscout.log"

    @property
    def error_log(self) -> Path:
        return self.root / "error.log"

    @property
    def sources_dir(self) -> Path:
        return self.root / "sources"

    def source_log(self, source_name: str) -> Path:
        return self.sources_dir / f"{source_name}.log"


def _file_handler(path: Path, level: str) -> dict:
    return {
        "class": "logging.FileHandler",
        "level": level,
        "filename": str(path),
        "formatter": "json",
        "encoding": "utf-8",
    }


def _dict_config(layout: LogLayout, verbose: bool) -> dict:
    level = "DEBUG" if verbose else "INFO"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": "pythonjsonlogger.jsonlogger.JsonFormatter", "fmt": JSON_FORMAT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level if verbose else "WARNING",
                "formatter": "json",
            },
            "app_file": _file_handler(layout.app_log, level),
            "error_file": _file_handler(layout.error_log, "ERROR"),
        },
        "loggers": {
            APP_LOGGER: {
                "handlers": ["console", "app_file", "error_file"],
                "level": level,
                "propagate": False,
            },
        },
    }


def configure_logging(verbose: bool = False) -> structlog.stdlib.BoundLogger:
    """Set logging up once per process and return the application logger."""

    global _configured
    with _lock:
        if not _configured:
            layout = LogLayout.current()
            layout.sources_dir.mkdir(parents=True, exist_ok=True)
            logging.config.dictConfig(_dict_config(layout, verbose))
            structlog.configure(
                processors=[
                    structlog.contextvars.merge_contextvars,
                    structlog.stdlib.add_log_level,
                    structlog.processors.TimeStamper(fmt="iso"),
                    structlog.processors.StackInfoRenderer(),
                    structlog.processors.format_exc_info,
                    structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
                ],
                logger_factory=structlog.stdlib.LoggerFactory(),
                wrapper_class=structlog.stdlib.BoundLogger,
                cache_logger_on_first_use=True,
            )
            _configured = True
    return structlog.get_logger(APP_LOGGER)


def source_logger(source_name: str, verbose: bool = False) -> structlog.stdlib.BoundLogger:
    """Logger bound to ``source_name`` that also writes to the source's own file."""

    configure_logging(verbose)
    path = LogLayout.current().source_log(source_name)
    std_logger = logging.getLogger(f"{APP_LOGGER}.source.{source_name}")
    with _lock:
        if not any(getattr(handler, "baseFilename", None) == str(path) for handler in std_logger.handlers):
            path.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(path, encoding="utf-8")
            handler.setLevel(logging.INFO)
            app_handlers = logging.getLogger(APP_LOGGER).handlers
            if app_handlers:
                handler.setFormatter(app_handlers[0].formatter)
            std_logger.addHandler(handler)
    return structlog.get_logger(std_logger.name).bind(source=source_name)


def log_path(source_name: str | None = None) -> Path:
    layout = LogLayout.current()
    return layout.source_log(source_name) if source_name else layout.app_log


def available_source_logs() -> list[Path]:
    sources_dir = LogLayout.current().sources_dir
    if not sources_dir.exists():
        return []
    return sorted(sources_dir.glob("*.log"))


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        return stream.readlines()[-line_count:]


__all__ = [
    "LogLayout",
    "available_source_logs",
    "configure_logging",
    "log_path",
    "source_logger",
    "tail_log",
]
