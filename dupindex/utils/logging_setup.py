"""
Logging for index operations.

Library code logs through module-level ``logging.getLogger(__name__)``
loggers. Whole-index operations (load, save, change scans) go through
``log_operation``, which attaches the operation name and its counts to the
record so ``IndexLogFormatter`` can write them as JSON lines.
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

LOGGER_NAME = 'dupindex'
CONSOLE_FORMAT = '%(asctime)s - %(levelname)s - [%(name)s] - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class IndexLogFormatter(logging.Formatter):
    """One JSON object per record, with operation context flattened in."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        operation = getattr(record, 'operation', None)
        if operation is not None:
            log_obj['operation'] = operation
            log_obj.update(getattr(record, 'context', {}))

        if record.exc_info:
            log_obj['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_obj, ensure_ascii=False, default=str)


def setup_logging(level: str = 'INFO', log_file: Optional[Union[str, Path]] = None) -> logging.Logger:
    """
    Attach handlers to the package logger.

    Args:
        level: Console logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path of a rotating JSON-lines log capturing all levels

    Returns:
        The configured ``dupindex`` logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if log_file is not None else getattr(logging, level.upper()))
    logger.handlers.clear()
    logger.propagate = False

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, level.upper()))
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(console_handler)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8',
        )
        file_handler.setFormatter(IndexLogFormatter())
        file_handler.setLevel(logging.DEBUG)
        logger.addHandler(file_handler)

    return logger


def log_operation(logger: logging.Logger, operation: str, message: str,
                  level: int = logging.INFO, **context: Any) -> None:
    """
    Log a completed index operation.

    Args:
        logger: Logger instance
        operation: Operation name, e.g. ``load_index``
        message: Human-readable summary
        level: Logging level
        **context: Counts, durations and paths describing the operation
    """
    logger.log(level, message, extra={'operation': operation, 'context': context})
