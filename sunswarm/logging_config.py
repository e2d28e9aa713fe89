"""
Logging Configuration
Sets up the 'sunswarm' logger used by the optimizer and the problems.

What goes where:
    DEBUG    every particle evaluation and a summary per step
    INFO     termination, the best result, the applied design, saved plots
    WARNING  candidates given up after the constraint retries
    ERROR    evaluator failures
"""
import logging
import sys
from typing import IO, Optional

PACKAGE_LOGGER = "sunswarm"

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_DATEFMT = '%H:%M:%S'


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    console: bool = True,
    stream: Optional[IO[str]] = None,
    fmt: str = DEFAULT_FORMAT,
    datefmt: str = DEFAULT_DATEFMT,
    file_level: Optional[int] = None,
) -> logging.Logger:
    """
    Configure the package logger and return it.

    Calling it again replaces the handlers of the previous call.

    Args:
        level: Level of the logger and the console handler
        log_file: Optional path; the file is overwritten for each run
        console: Attach a console handler
        stream: Console stream (stdout by default)
        fmt, datefmt: Formatter settings shared by all handlers
        file_level: Level of the file handler, e.g. logging.DEBUG to keep every
            particle evaluation in the file while the console shows INFO
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    # the file handler may want more detail than the console
    logger.setLevel(min(level, file_level) if (log_file and file_level is not None) else level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(fmt, datefmt=datefmt)

    if console:
        console_handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(file_level if file_level is not None else level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.debug("Logging initialized (level %s)", logging.getLevelName(level))
    return logger
