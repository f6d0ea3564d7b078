from __future__ import annotations

import logging
from threading import Lock

from orchestrator.core.config import get_settings

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configure_lock = Lock()
_is_configured = False


def configure_logging() -> None:
    global _is_configured
    if _is_configured:
        return

    with _configure_lock:
        if _is_configured:
            return
        settings = get_settings()
        level = logging.getLevelName(settings.log_level.upper())
        if not isinstance(level, int):
            level = logging.INFO
        logging.basicConfig(level=level, format=_LOG_FORMAT)
        logging.getLogger("orchestrator").setLevel(level)
        # httpx logs every request line at INFO.
        logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
        _is_configured = True
