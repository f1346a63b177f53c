"""Process logging for the CLIs and any host embedding the sync engine."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from pathlib import Path

_CONFIGURED = False
DEFAULT_LOG_PATH = "work/logs/story_sync.log"

# Loggers that are chatty at DEBUG: httpx logs every request, and the scene
# editor logs once per applied keystroke.
_LOGGER_LEVEL_ENV = {
    "httpx": ("STORY_SYNC_HTTP_LOG_LEVEL", "WARNING"),
    "httpcore": ("STORY_SYNC_HTTP_LOG_LEVEL", "WARNING"),
    "story_sync.application.scene_editor": ("STORY_SYNC_EDITOR_LOG_LEVEL", "INFO"),
}


@dataclass(frozen=True)
class LoggingSettings:
    log_path: Path
    level: int
    max_bytes: int
    backup_count: int
    console: bool
    logger_levels: dict[str, int] = field(default_factory=dict)


def _int_env(name: str, default: int, *, minimum: int, maximum: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, min(maximum, value))


def _level_env(name: str, default: str) -> int:
    level_name = os.environ.get(name, "").strip().upper() or default
    level = logging.getLevelName(level_name)
    if isinstance(level, int):
        return level
    return logging.getLevelName(default)


def logging_settings_from_env() -> LoggingSettings:
    """Read the ``STORY_SYNC_LOG_*`` family of variables."""
    raw_path = os.environ.get("STORY_SYNC_LOG_PATH", "").strip()
    console = os.environ.get("STORY_SYNC_LOG_CONSOLE", "1").strip().lower()
    return LoggingSettings(
        log_path=Path(raw_path or DEFAULT_LOG_PATH),
        level=_level_env("STORY_SYNC_LOG_LEVEL", "INFO"),
        max_bytes=_int_env(
            "STORY_SYNC_LOG_MAX_BYTES",
            5 * 1024 * 1024,
            minimum=64 * 1024,
            maximum=100 * 1024 * 1024,
        ),
        backup_count=_int_env("STORY_SYNC_LOG_BACKUP_COUNT", 10, minimum=1, maximum=120),
        console=console not in {"0", "false", "no", "off"},
        logger_levels={
            name: _level_env(env_name, default)
            for name, (env_name, default) in _LOGGER_LEVEL_ENV.items()
        },
    )


def configure_runtime_logging(*, force: bool = False) -> LoggingSettings:
    """Install the rotating file handler (and stderr console) on the root logger.

    Runs once per process unless ``force`` is set. Console output goes to
    stderr so CLI results on stdout stay machine-readable.
    """
    global _CONFIGURED
    settings = logging_settings_from_env()
    if _CONFIGURED and not force:
        return settings

    settings.log_path.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    handlers: list[logging.Handler] = [
        RotatingFileHandler(
            filename=settings.log_path,
            maxBytes=settings.max_bytes,
            backupCount=settings.backup_count,
            encoding="utf-8",
        )
    ]
    if settings.console:
        handlers.append(logging.StreamHandler(sys.stderr))

    root = logging.getLogger()
    root.setLevel(settings.level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name, level in settings.logger_levels.items():
        logging.getLogger(name).setLevel(level)

    _CONFIGURED = True
    logging.getLogger(__name__).debug(
        "observability.configured path=%s level=%s console=%s",
        settings.log_path,
        logging.getLevelName(settings.level),
        settings.console,
    )
    return settings
