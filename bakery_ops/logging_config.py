from __future__ import annotations

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

from bakery_ops.config import settings

TEXT_FORMAT = '%(asctime)s %(levelname)s %(name)s %(message)s'


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    handler = logging.StreamHandler(sys.stdout)
    if (fmt or settings.log_format).strip().lower() == 'json':
        handler.setFormatter(
            JsonFormatter(
                TEXT_FORMAT,
                rename_fields={'levelname': 'level', 'asctime': 'timestamp', 'name': 'logger'},
            )
        )
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.getLevelName((level or settings.log_level).upper()))
