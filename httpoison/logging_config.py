"""Logging setup for httpoison.

Library modules log through `logging.getLogger(__name__)` and never attach
handlers themselves. Applications (the CLI included) call
`configure_logging()` once to get output on stderr.

The executor emits its request/response records at DEBUG with the fields
`method`, `url`, `body` and `status_code` attached to the record via `extra`.
"""

from __future__ import annotations

import logging
import sys


_LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_ROOT_NAME = "httpoison"


def configure_logging(level: int | str = logging.INFO) -> logging.Logger:
    """Attach a stderr handler to the 'httpoison' logger and set its level.

    Safe to call multiple times: the handler is added once, the level is
    updated on every call.

    Args:
        level: Level for the httpoison namespace, as int or name ("DEBUG").

    Returns:
        The configured 'httpoison' logger.
    """
    root = logging.getLogger(_ROOT_NAME)

    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
        root.addHandler(handler)
        root.propagate = False

    root.setLevel(level)
    return root


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the 'httpoison' namespace."""
    if name != _ROOT_NAME and not name.startswith(_ROOT_NAME + "."):
        name = f"{_ROOT_NAME}.{name}"
    return logging.getLogger(name)
