import logging

from app.core.config import settings


def configure_logging() -> logging.Logger:
    logger = logging.getLogger("rifaapp")
    if not logger.handlers:
        logging.basicConfig(
            level=getattr(logging, settings.log_level.upper(), logging.INFO),
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    return logger
