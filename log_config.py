import json
import logging
import logging.handlers
import os
from typing import Optional

from config import settings

_FORMAT = json.dumps({
    "timestamp": "%(asctime)s",
    "level": "%(levelname)s",
    "logger": "%(name)s",
    "message": "%(message)s",
}, ensure_ascii=False)


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None, max_log_days: int = 7) -> logging.Logger:
    """
    Configure the root logger with JSON formatted lines on stdout and,
    optionally, a file handler rotated at midnight.
    """
    level = level or settings.LOG_LEVEL
    log_file = log_file or settings.LOG_FILE

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplication on reload
    root.handlers.clear()

    formatter = logging.Formatter(_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        file_handler = logging.handlers.TimedRotatingFileHandler(
            filename=log_file,
            when="midnight",
            interval=1,
            backupCount=max_log_days,
            encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    return root
