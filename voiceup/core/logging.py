from __future__ import annotations

import logging
import sys

from voiceup.core.settings import settings

log = logging.getLogger("voiceup")

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

def configure_logging(level: str | None = None) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel((level or settings.log_level).upper())
    # uvicorn access logs carry bearer tokens in websocket query strings
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
