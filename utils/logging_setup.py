"""
Logging setup for the strategy process.
"""

import logging
from typing import Optional

_HTTP_LOGGER_NAMES = ("httpx", "httpcore")
_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_http_filter: Optional[logging.Filter] = None


class _HttpRequestFilter(logging.Filter):
    """
    Drop per-request INFO lines from the HTTP client; warnings still pass.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.WARNING


def set_http_logs_suppressed(suppress: bool) -> None:
    global _http_filter
    loggers = [logging.getLogger(name) for name in _HTTP_LOGGER_NAMES]
    if suppress:
        if _http_filter is None:
            _http_filter = _HttpRequestFilter()
            for logger in loggers:
                logger.addFilter(_http_filter)
        return
    if _http_filter is not None:
        for logger in loggers:
            logger.removeFilter(_http_filter)
        _http_filter = None


def configure_logging(level: str = "INFO", suppress_http_logs: bool = True) -> None:
    numeric_level = logging.getLevelName(str(level).upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level!r}")
    logging.basicConfig(level=numeric_level, format=_LOG_FORMAT, force=True)
    set_http_logs_suppressed(suppress_http_logs)
