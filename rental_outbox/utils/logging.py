import logging
import sys
from typing import Optional

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_DEFAULT_LEVEL = "INFO"


class ExtraFieldsFormatter(logging.Formatter):
    """Append ``extra=`` context as key=value pairs so worker output stays greppable."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}
        if not extras:
            return line
        rendered = " ".join(f"{key}={value}" for key, value in sorted(extras.items()))
        return f"{line} {rendered}"


def set_default_level(level: str) -> None:
    global _DEFAULT_LEVEL
    _DEFAULT_LEVEL = level.upper()


def configure_logging(name: str, level: Optional[str] = None) -> logging.Logger:
    """Structured stdout logger shared by the dispatcher components."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    formatter = ExtraFieldsFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    handler.setFormatter(formatter)

    logger.setLevel((level or _DEFAULT_LEVEL).upper())
    logger.addHandler(handler)
    logger.propagate = False
    return logger
