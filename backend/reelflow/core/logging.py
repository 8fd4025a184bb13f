"""Logging configuration for the application"""
import logging
from typing import Optional

from reelflow.core.config import settings

# Named loggers used across services, routes and background tasks
DOMAIN_LOGGERS = ("generation", "publish", "batch", "status_checker", "security", "api_access")

NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "sqlalchemy.engine")


def setup_logging(level: Optional[str] = None):
    """Configure root logging once at startup

    Domain loggers follow LOG_LEVEL; third-party clients stay at WARNING
    unless the app itself runs at DEBUG.
    """
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        force=True
    )

    for name in DOMAIN_LOGGERS:
        logging.getLogger(name).setLevel(log_level)

    third_party_level = logging.DEBUG if log_level == logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)
