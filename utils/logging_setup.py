"""
Logging for the bot process.

Besides the usual console and rotating file output, every role or lifecycle
record mutation is written by ``audit()`` to the ``staff_audit`` logger, which
has its own file so staff changes can be reviewed without the gateway noise.
"""
import gzip
import logging
import logging.config
import os
import shutil
from logging.handlers import TimedRotatingFileHandler
from typing import Any, Dict, Optional

logging.addLevelName(logging.WARNING, "WARN")
logging.addLevelName(logging.CRITICAL, "FATAL")

AUDIT_LOGGER = "staff_audit"

# discord.py is chatty at INFO
NOISY_LOGGERS = ("discord.gateway", "discord.client", "discord.http")


class GZipTimedRotatingFileHandler(TimedRotatingFileHandler):
    """Rotates at the configured interval and gzips the rotated file."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.namer = lambda name: f"{name}.gz"

    def rotator(self, source: str, dest: str) -> None:
        with open(source, "rb") as src, gzip.open(dest, "wb") as dst:
            shutil.copyfileobj(src, dst)
        os.remove(source)


def _enabled(path: Optional[str]) -> bool:
    return path is not None and str(path).strip().lower() not in {"", "none", "false"}


def _rotating_file(path: str, formatter: str, level: str, backup_count: int) -> Dict[str, Any]:
    log_dir = os.path.dirname(path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    return {
        "class": "utils.logging_setup.GZipTimedRotatingFileHandler",
        "formatter": formatter,
        "filename": path,
        "when": "midnight",
        "backupCount": backup_count,
        "encoding": "utf-8",
        "level": level,
    }


def setup_logging(level: str = "INFO",
                  log_file: Optional[str] = "logs/bot.log",
                  audit_file: Optional[str] = "logs/staff_audit.log") -> None:
    """
    Configure root logging and the staff audit log.

    Environment overrides:
        - LOG_LEVEL: root level (default ``level``)
        - LOG_CONSOLE_LEVEL / LOG_FILE_LEVEL: per-handler levels (default LOG_LEVEL)
        - LOG_FILE: bot log path; "", "none" or "false" disables it
        - AUDIT_LOG_FILE: staff audit log path; disabled the same way
        - LOG_BACKUP_COUNT: number of gzip archives to keep per file (default 14)
    """
    root_level = os.getenv("LOG_LEVEL", level).upper()
    backup_count = int(os.getenv("LOG_BACKUP_COUNT", "14"))
    bot_log = os.getenv("LOG_FILE", log_file)
    audit_log = os.getenv("AUDIT_LOG_FILE", audit_file)

    handlers: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "console",
            "level": (os.getenv("LOG_CONSOLE_LEVEL") or root_level).upper(),
        }
    }
    if _enabled(bot_log):
        handlers["file"] = _rotating_file(
            bot_log, "file", (os.getenv("LOG_FILE_LEVEL") or root_level).upper(), backup_count
        )
    root_handlers = list(handlers)

    loggers: Dict[str, Dict[str, Any]] = {name: {"level": "WARNING"} for name in NOISY_LOGGERS}
    # Audit lines are kept even when LOG_LEVEL is raised above INFO
    loggers[AUDIT_LOGGER] = {"level": "INFO", "handlers": []}
    if _enabled(audit_log):
        handlers["audit"] = _rotating_file(audit_log, "audit", "INFO", backup_count)
        loggers[AUDIT_LOGGER]["handlers"] = ["audit"]

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": "[%(asctime)s] [%(levelname)s] [%(name)s]: %(message)s"},
            "file": {"format": "[%(asctime)s] [%(levelname)s] [%(name)s] [%(filename)s:%(lineno)d]: %(message)s"},
            "audit": {"format": "[%(asctime)s] %(message)s"},
        },
        "handlers": handlers,
        "loggers": loggers,
        "root": {"handlers": root_handlers, "level": root_level},
    })


def get_logger(name: str) -> logging.Logger:
    """Module logger."""
    return logging.getLogger(name)


def audit(event: str, **fields: Any) -> None:
    """
    Record one staff mutation, e.g. ``audit("promote", guild=1, member=2, by=3)``.

    Fields are written as ``key=value`` in the order given.
    """
    details = " ".join(f"{key}={value}" for key, value in fields.items())
    logging.getLogger(AUDIT_LOGGER).info("%s %s", event, details)
