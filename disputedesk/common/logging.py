import logging
import sys

from disputedesk.config import settings

ROOT_LOGGER = "disputedesk"

_configured = False


def setup_logging(level: str | None = None) -> None:
    """Attach a single stream handler to the package root logger.

    Safe to call more than once (API lifespan and Celery worker start both do).
    """
    global _configured

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO))

    if _configured:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
    )
    root.addHandler(handler)
    root.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
