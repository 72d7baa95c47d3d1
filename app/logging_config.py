import logging

from app.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging():
    logging.basicConfig(level=getattr(logging, LOG_LEVEL.upper(), logging.INFO), format=LOG_FORMAT)
    # uvicorn access lines duplicate the request logging middleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def log_business(event: str, **details):
    """Log a business event (verification, status change, booking) in one grep-able line."""
    logging.getLogger("app.business").info(f"{event} {details}")
