from __future__ import annotations

import logging

from stockbook.core.config import get_settings

_HANDLER_NAME = "stockbook"


def configure_logging(level: str | None = None) -> None:
    settings = get_settings()
    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())

    for handler in root.handlers:
        if handler.get_name() == _HANDLER_NAME:
            return

    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(settings.log_format))
    root.addHandler(handler)
