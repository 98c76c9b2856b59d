"""The logging configuration module.

Logs go to stdout, as text when developing locally and as one JSON object per line
otherwise. Context such as the business id or the Stripe event id travels with a
``ContextualLogger`` and ends up under ``custom_dimensions``.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

_PACKAGE = "smallbizagent"


def _module_path(pathname: str, fallback: str) -> str:
    """Dotted module path inside the package, e.g. 'smallbizagent.platform.billing.webhook_handler'."""
    parts = pathname.replace("\\", "/").removesuffix(".py").split("/")
    if _PACKAGE not in parts:
        return fallback
    start = len(parts) - 1 - parts[::-1].index(_PACKAGE)
    return ".".join(parts[start:])


class JSONFormatter(logging.Formatter):
    """Format records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": _module_path(record.pathname, record.module),
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }
        dimensions = getattr(record, "custom_dimensions", None)
        if dimensions:
            entry["custom_dimensions"] = dimensions
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human readable format for local development, with the dimensions appended."""

    def __init__(self):
        """Initialize the formatter with the local development line format."""
        super().__init__("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        """Format the record, followed by its dimensions as ``key=value`` pairs."""
        line = super().format(record)
        dimensions = getattr(record, "custom_dimensions", None)
        if not dimensions:
            return line
        context = " ".join(f"{key}={value}" for key, value in dimensions.items())
        return f"{line} [{context}]"


class ContextualLogger(logging.LoggerAdapter):
    """A LoggerAdapter that attaches custom dimensions to every record."""

    def __init__(self, logger: logging.Logger, dimensions: Optional[dict] = None) -> None:
        """Initialize the contextual logger.

        Args:
        ----
            logger (logging.Logger): Base logger instance
            dimensions (Optional[dict]): Custom dimensions for structured logging

        """
        super().__init__(logger, {})
        self.dimensions = dimensions or {}

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        """Merge the dimensions into the record's extras."""
        if self.dimensions:
            extra = kwargs.setdefault("extra", {})
            extra["custom_dimensions"] = {**extra.get("custom_dimensions", {}), **self.dimensions}
        return msg, kwargs

    def with_context(self, **dimensions: str | int | float | bool | None) -> "ContextualLogger":
        """Return a logger carrying these dimensions on top of the current ones.

        ```python
        log = logger.with_context(business_id=42, event_type="invoice.payment_failed")
        log.info("Settling overage charge")
        ```
        """
        return ContextualLogger(self.logger, {**self.dimensions, **dimensions})


class LoggerConfigurator:
    """Configures the package loggers from ``LOG_LEVEL`` and ``LOCAL_DEVELOPMENT``."""

    @staticmethod
    def configure_logger(name: str, dimensions: Optional[dict] = None) -> ContextualLogger:
        """Configure and return a logger with the given name and initial context.

        Args:
        ----
            name (str): Logger name (typically __name__)
            dimensions (Optional[dict]): Initial custom dimensions

        Returns:
        -------
            ContextualLogger: Configured logger with context support

        """
        logger = logging.getLogger(name)

        # Import settings here to avoid circular imports
        from smallbizagent.core.config import settings

        logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
        logger.propagate = False

        if not getattr(logger, "_smallbizagent_configured", False):
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(TextFormatter() if settings.LOCAL_DEVELOPMENT else JSONFormatter())
            logger.handlers.clear()
            logger.addHandler(handler)
            logger._smallbizagent_configured = True

        return ContextualLogger(logger, dimensions)


# Default logger instance
logger = LoggerConfigurator.configure_logger(__name__)
