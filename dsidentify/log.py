# This file is part of ds-identify. See LICENSE file for license information.

import logging
import sys
import time
from contextlib import suppress

DEFAULT_LOG_FORMAT = "%(asctime)s - %(filename)s[%(levelname)s]: %(message)s"


def setup_basic_logging(level=logging.DEBUG, formatter=None):
    formatter = formatter or logging.Formatter(DEFAULT_LOG_FORMAT)
    root = logging.getLogger()
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.setLevel(level)
    root.addHandler(console)
    root.setLevel(logging.DEBUG)


def setup_file_logging(path, level=logging.DEBUG, formatter=None):
    """Also log to path. Failure to open the file is reported and ignored."""
    formatter = formatter or logging.Formatter(DEFAULT_LOG_FORMAT)
    try:
        handler = logging.FileHandler(path, mode="a")
    except OSError as e:
        logging.getLogger(__name__).warning(
            "Unable to log to %s: %s", path, e
        )
        return None
    handler.setFormatter(formatter)
    handler.setLevel(level)
    logging.getLogger().addHandler(handler)
    return handler


def flush_loggers(root):
    if not root:
        return
    for h in root.handlers:
        if isinstance(h, (logging.StreamHandler)):
            with suppress(IOError):
                h.flush()
    flush_loggers(root.parent)


def reset_logging():
    """Remove all current handlers and unset log level."""
    log = logging.getLogger()
    handlers = list(log.handlers)
    for h in handlers:
        h.flush()
        h.close()
        log.removeHandler(h)
    log.setLevel(logging.NOTSET)


def configure_root_logger(verbose=False):
    """Customize the root logger for ds-identify"""

    # Always format logging timestamps as UTC time
    logging.Formatter.converter = time.gmtime
    reset_logging()
    setup_basic_logging(logging.DEBUG if verbose else logging.WARNING)
