import logging
from typing import Optional, Protocol

LEVELS = (logging.DEBUG, logging.INFO, logging.WARNING, logging.ERROR)


class LogSink(Protocol):
    """Anything that accepts a message and a `logging` level."""

    def log(self, message: str, level: int) -> None:
        ...


class LoggerSink:
    """Forwards indexer events to a standard library logger."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("media_indexer")

    def log(self, message: str, level: int) -> None:
        if level not in LEVELS:
            level = logging.INFO
        self.logger.log(level, message)
