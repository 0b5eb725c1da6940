"""Logging setup shared by test runs and load-test flows."""
import logging

from callharness.config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.log_level.upper(), None)
    if not isinstance(level, int):
        logging.getLogger(__name__).warning(f"Invalid log level {settings.log_level!r}, defaulting to INFO")
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
