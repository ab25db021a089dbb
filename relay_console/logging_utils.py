from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_HANDLER_NAME = "relay_console"


def configure_logging(level: str | None = None) -> None:
    """Install a single stream handler on the root logger.

    Calling this more than once only adjusts the level.
    """
    resolved = (level or os.getenv("RELAY_LOG_LEVEL", "INFO")).strip().upper()
    numeric_level = getattr(logging, resolved, logging.INFO)

    root = logging.getLogger()
    root.setLevel(numeric_level)

    if any(handler.get_name() == _HANDLER_NAME for handler in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    # urllib3 chatters at DEBUG for every pooled connection
    logging.getLogger("urllib3").setLevel(max(numeric_level, logging.WARNING))
