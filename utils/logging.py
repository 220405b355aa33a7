"""
Logging utilities for the supervisor
"""

import json
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Optional


LOGGER_NAMES = ("supervision", "cli", "utils")


class JsonLineFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        session_id = getattr(record, 'session_id', None)
        if session_id:
            entry['session_id'] = session_id
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    console_output: bool = True,
    json_file: Optional[str] = None,
) -> logging.Logger:
    """Setup logging configuration for the supervisor packages"""

    level = getattr(logging, log_level.upper())
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    handlers = []

    # Console handler; stdout belongs to the supervised session
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    # File handler
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    # JSON lines session log
    if json_file:
        json_path = Path(json_file)
        json_path.parent.mkdir(parents=True, exist_ok=True)

        json_handler = logging.FileHandler(json_file)
        json_handler.setFormatter(JsonLineFormatter())
        handlers.append(json_handler)

    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.handlers.clear()
        for handler in handlers:
            logger.addHandler(handler)
        logger.propagate = False

    return logging.getLogger(LOGGER_NAMES[0])


def get_default_log_file() -> str:
    """Get default log file path"""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"logs/supervisor_{timestamp}.log"
