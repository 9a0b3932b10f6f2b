"""
Logging helpers shared by the CLI and the Lambda entry point.
"""
import json
import logging
from datetime import datetime


class JSONFormatter(logging.Formatter):
    """Render log records as one JSON object per line."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False)


def setup_logging(level='INFO'):
    """Configure the root logger with JSON formatting"""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(message)s',
        handlers=[logging.StreamHandler()],
        force=True
    )

    json_formatter = JSONFormatter()
    for handler in logging.root.handlers:
        handler.setFormatter(json_formatter)

    return logging.getLogger('suumo_import')


class SessionLogger:
    """Logger wrapper that includes the session id in all messages"""

    def __init__(self, session_id, log_level='INFO', name='suumo_import'):
        self.session_id = session_id
        self._logger = logging.getLogger(name)
        self._logger.setLevel(getattr(logging, str(log_level).upper(), logging.INFO))

    def info(self, message):
        self._logger.info(f"[{self.session_id}] {message}")

    def warning(self, message):
        self._logger.warning(f"[{self.session_id}] {message}")

    def error(self, message):
        self._logger.error(f"[{self.session_id}] {message}")

    def debug(self, message):
        self._logger.debug(f"[{self.session_id}] {message}")
