import datetime
import logging
import sys
from typing import Optional

logger = logging.getLogger("burn_register")

FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATEFMT = "%Y-%m-%d %H:%M:%S.%f"


class MicrosecondFormatter(logging.Formatter):
    """Custom formatter that supports %f (microseconds) in datefmt on all Python versions."""

    def formatTime(self, record, datefmt=None):
        dt = datetime.datetime.fromtimestamp(record.created, datetime.timezone.utc).astimezone()
        if datefmt:
            return dt.strftime(datefmt)
        # Fallback to default implementation if no datefmt provided
        return super().formatTime(record, datefmt)


def setup_logging(path: Optional[str] = None, level: str = "INFO") -> logging.Logger:
    numeric = getattr(logging, str(level).upper(), logging.INFO)
    logger.setLevel(numeric)
    fmt = MicrosecondFormatter(FORMAT, DATEFMT)

    if not logger.handlers:
        ch = logging.StreamHandler(sys.stdout)
        ch.setFormatter(fmt)
        logger.addHandler(ch)
        if path:
            fh = logging.FileHandler(path)
            fh.setFormatter(fmt)
            logger.addHandler(fh)
    for handler in logger.handlers:
        handler.setLevel(numeric)
    return logger
