import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional


__version__ = '1.0.0'


def configure_logging(level: str = 'INFO', log_file: Optional[str] = None):
    """Configure console logging, plus a rotating log file when one is given."""

    log_level = getattr(logging, str(level).upper(), logging.INFO)
    handlers = []

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)
    handlers.append(console_handler)

    # File handler
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10485760,  # 10MB
            backupCount=10
        )
        file_handler.setLevel(log_level)
        file_formatter = logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        handlers.append(file_handler)

    # Configure root logger
    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    # Quiet down the HTTP client libraries used by boto3 and docker
    for name in ('botocore', 'boto3', 's3transfer', 'urllib3', 'docker'):
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    logging.getLogger(__name__).debug(
        f"Logging configured (level: {logging.getLevelName(log_level)})"
    )
