from __future__ import annotations

import logging
from pathlib import Path

_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
_configured = False


def configure_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Console logging for the whole app plus a file handler for the
    ``ingestion`` logger. Safe to call more than once."""
    global _configured
    if _configured:
        return
    logging.basicConfig(level=level.upper(), format="%(asctime)s %(name)s %(levelname)s %(message)s")
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(path, encoding="utf-8")
        fh.setLevel(logging.INFO)
        fh.setFormatter(logging.Formatter(_FORMAT))
        ingestion_logger = logging.getLogger("ingestion")
        if not ingestion_logger.handlers:
            ingestion_logger.addHandler(fh)
    _configured = True


__all__ = ["configure_logging"]
