"""
Logging setup for the marketplace service.

Records go to stdout and, unless MARKETPLACE_LOG_FILE is set to an empty
value, to a log file. Each line carries the process id and logger name so
checkout and order logs of several workers can be told apart.
"""

import logging
import os
import sys

LOG_FILE = os.environ.get("MARKETPLACE_LOG_FILE", "marketplace.log")
LOG_FORMAT = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s'


def build_handlers(log_file=LOG_FILE):
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.insert(0, logging.FileHandler(log_file))
    return handlers


def setup_logging(level=logging.INFO, log_file=LOG_FILE):
    """Configures the root logger; the httpx request lines are kept at WARNING."""
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=build_handlers(log_file))

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name):
    return logging.getLogger(name)
