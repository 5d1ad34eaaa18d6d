import logging
import sys

from src import config


def setup_logging(logger_name, level=None):
    """Configure console logging with the project formatter"""

    # Create formatter
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Create logger
    logger = logging.getLogger(logger_name)
    logger.setLevel(level or config.DEFAULT_LOG_LEVEL)

    # Console handler, added once per logger
    if not any(getattr(h, "_flowacc_console", False) for h in logger.handlers):
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        console_handler._flowacc_console = True
        logger.addHandler(console_handler)

    return logger
