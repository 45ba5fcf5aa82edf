"""
Logging setup for the webhook process.
"""
import logging
import sys

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are too chatty at DEBUG
_NOISY_LOGGERS = ("httpx", "httpcore", "kubernetes.client.rest", "urllib3")


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger with a single stderr handler."""
    root = logging.getLogger()
    if not any(getattr(h, "_certsync_handler", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        handler._certsync_handler = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    set_log_level(level)


def set_log_level(level: str) -> None:
    """Set the root log level, keeping HTTP client internals at WARNING."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    logging.getLogger().setLevel(numeric)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))
    logging.getLogger(__name__).debug("Log level set to %s", logging.getLevelName(numeric))
