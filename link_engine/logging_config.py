"""Structured logging: readable console output plus JSON files for shipping."""

import logging
import sys
from datetime import datetime
from pathlib import Path

from pythonjsonlogger import jsonlogger

from link_engine.config import settings

# Chatty at INFO; their warnings still come through
NOISY_LOGGERS = ("httpx", "httpcore", "apscheduler.executors", "sentence_transformers", "openai")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Adds timestamp, level, logger and call site to every JSON record."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record['timestamp'] = datetime.utcnow().isoformat() + 'Z'
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['source'] = f"{record.filename}:{record.lineno}"
        if record.funcName:
            log_record['function'] = record.funcName


def setup_logging(base_dir: str | Path | None = None):
    """Configure root logging.

    Args:
        base_dir: Directory holding the logs/ folder (settings.log_dir, then
                  the current working directory, when omitted)
    """
    root = Path(base_dir or settings.log_dir or Path.cwd())
    logs_dir = root / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper()))
    root_logger.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    root_logger.addHandler(console)

    json_formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    for filename, level in (("link_engine.log", logging.DEBUG), ("error.log", logging.ERROR)):
        handler = logging.FileHandler(logs_dir / filename)
        handler.setLevel(level)
        handler.setFormatter(json_formatter)
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, root_logger.level))

    return root_logger


class LoggerAdapter(logging.LoggerAdapter):
    """Merges bound context (brand_id, job_id, ...) into each record's extra fields."""

    def process(self, msg, kwargs):
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return msg, kwargs


def get_logger(name: str, **context) -> LoggerAdapter:
    """Logger bound to context fields, e.g. get_logger(__name__, job="link_health_audit")."""
    return LoggerAdapter(logging.getLogger(name), context)
