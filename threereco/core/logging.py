from __future__ import annotations

import logging

from threereco.core.config import get_settings


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging() -> None:
    # Install a single stream handler once; repeated app factories reuse it.
    settings = get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    root = logging.getLogger()
    if not any(getattr(handler, "_threereco", False) for handler in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        handler._threereco = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(level)
    # SQL echo is noisy at INFO; keep it behind DEBUG.
    logging.getLogger("sqlalchemy.engine").setLevel(max(level, logging.WARNING))
