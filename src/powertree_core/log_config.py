# src/powertree_core/log_config.py
import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)-5.5s] [%(name)s] %(message)s"


def setup_logging(level=logging.INFO, stream=None):
    """
    Sends all records to a single stream handler (stdout unless `stream` is given).
    Calling it again swaps the handler rather than adding a second one.
    """
    root_logger = logging.getLogger()
    for old_handler in list(root_logger.handlers):
        root_logger.removeHandler(old_handler)
        old_handler.close()

    handler = logging.StreamHandler(sys.stdout if stream is None else stream)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    logging.debug("PowerTree logging configured at level %s.", logging.getLevelName(level))
