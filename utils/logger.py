import json
import logging
import os
import sys
import time
from typing import Optional

APP_LOGGER_NAME = "playlist_reorder"
LOG_FILE_PREFIX = "playlist_reorder"

_app_logger = logging.getLogger(APP_LOGGER_NAME)


class ConsoleFormatter(logging.Formatter):
    """Plain message; an attached exception is shown as one line, not a traceback."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.exc_info and record.exc_info[1] is not None:
            message = f"{message}: {record.exc_info[1]}"
        return message


class JsonLineFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, file, function, message[, err]."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S%z", time.localtime(record.created)),
            "level": record.levelname,
            "file": record.filename,
            "function": record.funcName,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["err"] = str(record.exc_info[1])
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(log_dir: str = "logs", level: str = "INFO") -> Optional[str]:
    """Configure console + JSON-lines file logging. Returns the log file path.

    Safe to call more than once; handlers installed by a previous call are replaced.
    """

    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    for handler in list(root.handlers):
        if getattr(handler, "_playlist_reorder", False):
            root.removeHandler(handler)
            handler.close()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(ConsoleFormatter())
    console._playlist_reorder = True
    root.addHandler(console)

    log_path = None
    try:
        os.makedirs(log_dir, exist_ok=True)
        log_path = os.path.join(log_dir, f"{LOG_FILE_PREFIX}_{time.strftime('%Y-%m-%d_%H-%M-%S')}.json")
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(JsonLineFormatter())
        file_handler._playlist_reorder = True
        root.addHandler(file_handler)
    except OSError as e:
        log_path = None
        _app_logger.warning(f"File logging disabled, could not open {log_dir}: {e}")

    # Library request logs would print tokens in query strings.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return log_path


def log_info(msg: str) -> None:
    _app_logger.info(msg, stacklevel=2)


def log_success(msg: str) -> None:
    _app_logger.info(f"✅ {msg}", stacklevel=2)


def log_warning(msg: str) -> None:
    _app_logger.warning(f"⚠️  {msg}", stacklevel=2)


def log_error(msg: str, exc: Optional[BaseException] = None) -> None:
    if exc is not None:
        _app_logger.error(msg, exc_info=(type(exc), exc, exc.__traceback__), stacklevel=2)
    else:
        _app_logger.error(msg, stacklevel=2)
