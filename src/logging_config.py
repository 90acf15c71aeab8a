import logging
import os
import sys
from typing import List

from tqdm import tqdm

# All modules log through this logger so a single setup call covers the whole run.
LOGGER_NAME = "xliff_translator"

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


class TqdmLoggingHandler(logging.StreamHandler):
    """Console handler that prints through ``tqdm.write`` above the batch progress bar."""

    def __init__(self, stream=None):
        super().__init__(stream if stream is not None else sys.stderr)

    def emit(self, record):
        try:
            tqdm.write(self.format(record), file=self.stream)
        except RecursionError:
            raise
        except Exception:
            self.handleError(record)


def parse_log_level(log_level_str: str) -> int:
    """Map a level name such as 'debug' to its number; unknown names give INFO."""
    level = logging.getLevelName(log_level_str.upper())
    return level if isinstance(level, int) else logging.INFO


def _build_handlers(log_file_path: str, log_to_console: bool) -> List[logging.Handler]:
    log_dir = os.path.dirname(log_file_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    handlers: List[logging.Handler] = [logging.FileHandler(log_file_path, encoding='utf-8')]
    if log_to_console:
        handlers.append(TqdmLoggingHandler())
    return handlers


def setup_logger(log_level_str: str, log_file_path: str, log_to_console: bool) -> logging.Logger:
    """
    Configure the ``xliff_translator`` logger for a run.

    Output always goes to ``log_file_path`` (its directory is created if needed)
    and, when ``log_to_console`` is set, to stderr without breaking tqdm bars.
    Handlers from an earlier call are closed and replaced, and records are not
    passed on to the root logger.

    Returns:
        The configured logger instance.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(parse_log_level(log_level_str))
    logger.propagate = False

    for old_handler in list(logger.handlers):
        logger.removeHandler(old_handler)
        old_handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in _build_handlers(log_file_path, log_to_console):
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger
