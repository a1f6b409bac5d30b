"""
Console logging for the lumen-human command.

Log records go to stderr through a single colorlog handler on the package
logger; stdout is left to the JSON result.
"""

import logging

import colorlog

PACKAGE_LOGGER = "lumen_human"

LOG_FORMAT = (
    "%(log_color)s%(asctime)s %(levelname)-8s%(reset)s "
    "%(purple)s%(name)s%(reset)s %(message)s"
)

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """
    Attach the colorized stderr handler to the ``lumen_human`` logger.

    Calling it again replaces the handler and level instead of stacking
    handlers. Returns the configured logger.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(log_level.upper())

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = colorlog.StreamHandler()
    handler.setFormatter(colorlog.ColoredFormatter(LOG_FORMAT, datefmt="%H:%M:%S", log_colors=LOG_COLORS))
    logger.addHandler(handler)
    return logger
