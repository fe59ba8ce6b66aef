import logging

from authz.core import config


_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
_configured = False


def get_logger(name: str) -> logging.Logger:
    """Return a module logger, configuring the root handler on first use."""
    global _configured
    if not _configured:
        logging.basicConfig(level=config.LOG_LEVEL.upper(), format=_FORMAT)
        _configured = True
    return logging.getLogger(name)
