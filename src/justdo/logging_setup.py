from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

_configured = False


# PUBLIC_INTERFACE
def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure logging for the service:
    - Console handler on stderr at `level`, attached to the 'justdo' logger
      only; third-party loggers (uvicorn etc.) keep their own handlers
    - Optional file handler receiving every justdo record at DEBUG

    Safe to call more than once; only the first call installs handlers.
    """
    global _configured
    if _configured:
        return

    console_level = logging.getLevelName(level)
    if not isinstance(console_level, int):
        console_level = logging.INFO

    fmt = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)

    app_logger = logging.getLogger("justdo")
    app_logger.setLevel(logging.DEBUG if log_file else console_level)

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    app_logger.addHandler(ch)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(path), encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(fmt)
        app_logger.addHandler(fh)

    # Route warnings.warn(...) into logging as 'py.warnings'
    logging.captureWarnings(True)
    _configured = True
