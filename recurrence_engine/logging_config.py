import logging
from typing import Optional


def configure_logging(level: int = logging.INFO) -> None:
    """Configure service logging with ISO-8601 timestamps."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "recurrence_engine")
