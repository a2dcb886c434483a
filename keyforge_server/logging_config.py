"""Logging setup for the Keyforge command line."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once.

    Args:
        level: Log level name (e.g., "DEBUG", "INFO")
    """
    global _configured

    if _configured:
        logging.getLogger().setLevel(level.upper())
        return

    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # SQL statements are only useful when debugging the repository
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    _configured = True
