from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_HANDLER_MARKER = "_workforce_handler"


def configure_logging(level: Union[int, str] = logging.INFO, log_path: Optional[Union[str, Path]] = None) -> logging.Logger:
    """Install stream (and optional rotating file) handlers on the root logger; safe to call twice."""
    root = logging.getLogger()
    root.setLevel(level if isinstance(level, int) else str(level).upper())
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    setattr(stream, _HANDLER_MARKER, True)
    root.addHandler(stream)

    if log_path is not None:
        path = Path(log_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        rotating = RotatingFileHandler(path, maxBytes=2_000_000, backupCount=5, encoding="utf-8")
        rotating.setFormatter(formatter)
        setattr(rotating, _HANDLER_MARKER, True)
        root.addHandler(rotating)
    return root
