import logging
import os
import sys
from typing import Optional

from tqdm import tqdm

# Every module logs through a child of this logger (`translation_reconciler.miner`,
# `translation_reconciler.history`, ...), so one setup call configures them all.
LOGGER_NAME = "translation_reconciler"

FILE_FORMAT = '%(asctime)s - %(levelname)s - %(component)s - %(message)s'
CONSOLE_FORMAT = '%(levelname)s [%(component)s] %(message)s'


def get_logger(component: Optional[str] = None) -> logging.Logger:
    """Return the reconciler logger, or the child logger for one component."""
    if not component:
        return logging.getLogger(LOGGER_NAME)
    return logging.getLogger(f"{LOGGER_NAME}.{component}")


class ComponentFilter(logging.Filter):
    """
    Tags each record with `component`: the logger name below the reconciler
    logger ("miner", "history", ...), or "main" for the reconciler logger itself.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        prefix = LOGGER_NAME + "."
        if record.name.startswith(prefix):
            record.component = record.name[len(prefix):]
        else:
            record.component = "main"
        return True


class TqdmLoggingHandler(logging.Handler):
    """Writes log lines through tqdm.write so they do not break the per-locale progress bar."""

    def emit(self, record):
        try:
            tqdm.write(self.format(record), file=sys.stderr)
        except (KeyboardInterrupt, SystemExit):
            raise
        except Exception:
            self.handleError(record)


def _reset_handlers(logger: logging.Logger) -> None:
    # Close file handles left over from an earlier run in the same process.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def setup_logger(log_level_str: str, log_file_path: Optional[str], log_to_console: bool) -> logging.Logger:
    """
    Configure the reconciler logger for a run.

    The log file gets timestamped lines. The console gets short lines routed
    through tqdm. Both carry the component that logged the record. Calling this
    again replaces the handlers of the previous call.

    Args:
        log_level_str: The logging level as a string (e.g., 'INFO', 'DEBUG').
        log_file_path: The path to the log file. Empty or None disables file logging.
        log_to_console: Whether to log to stderr.

    Returns:
        The configured reconciler logger.
    """
    logger = get_logger()
    logger.setLevel(getattr(logging, log_level_str.upper(), logging.INFO))
    _reset_handlers(logger)
    logger.propagate = False

    component_filter = ComponentFilter()

    if log_file_path:
        log_dir = os.path.dirname(log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file_path, encoding='utf-8')
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        file_handler.addFilter(component_filter)
        logger.addHandler(file_handler)

    if log_to_console:
        console_handler = TqdmLoggingHandler()
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        console_handler.addFilter(component_filter)
        logger.addHandler(console_handler)

    return logger
