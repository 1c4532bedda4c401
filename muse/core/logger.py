"""
Muse Tales - Logging

Everything logs under the "muse" namespace. Records go to the console at
LOG_LEVEL, to a rotating story log with full detail, and to a rotating error
log that only keeps failures. Transition and collaborator helpers keep the
per-session lines in one greppable shape: `[Session:<id>] <event> | <details>`.
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from muse.core.config import settings

ROOT_LOGGER = "muse"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 5

CONSOLE_FORMAT = logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s", datefmt="%H:%M:%S")
FILE_FORMAT = logging.Formatter(
    "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def _rotating_handler(path: Path, level: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(FILE_FORMAT)
    return handler


def configure_logging(logs_dir: Optional[Path] = None, console_level: Optional[str] = None) -> logging.Logger:
    """
    Attach the console, story and error handlers to the "muse" logger.

    Safe to call again: existing handlers are closed and replaced, so tests
    and the app factory can point logs somewhere else.
    """
    logs_dir = Path(logs_dir or settings.LOGS_DIR)
    logs_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(getattr(logging, (console_level or settings.LOG_LEVEL).upper(), logging.INFO))
    console.setFormatter(CONSOLE_FORMAT)
    root.addHandler(console)

    root.addHandler(_rotating_handler(logs_dir / "story.log", logging.DEBUG))
    root.addHandler(_rotating_handler(logs_dir / "error.log", logging.ERROR))
    return root


logger = configure_logging()


def get_logger(name: str) -> logging.Logger:
    """Child of the "muse" logger, e.g. get_logger("web") -> muse.web."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def log_story_event(session_id: str, event: str, details: str = ""):
    """One line per story transition."""
    line = f"[Session:{session_id}] {event}"
    get_logger("story").info(f"{line} | {details}" if details else line)


def log_agent_action(agent_name: str, action: str, details: str = "", success: bool = True):
    """Collaborator calls (writer, painter); failures are warnings."""
    agent_logger = get_logger(f"agent.{agent_name}")
    if success:
        agent_logger.info(f"[ok] {action} | {details}")
    else:
        agent_logger.warning(f"[failed] {action} | {details}")


def log_error(message: str, error: Optional[BaseException] = None, context: Optional[dict] = None):
    """Error line with `key=value` context; the traceback is attached when an exception is given."""
    suffix = "".join(f" | {key}={value}" for key, value in (context or {}).items())
    if error is not None:
        get_logger("error").error(f"{message}: {error}{suffix}", exc_info=error)
    else:
        get_logger("error").error(f"{message}{suffix}")
