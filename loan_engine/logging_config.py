"""
Structured Logging Configuration Module

JSON log lines for engine operations. Loan context (actor, action, affected
record, money moved) travels as LogRecord attributes set through ``extra``.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Any, Optional


ROOT_LOGGER = "loan_engine"

# LogRecord attributes copied into JSON output when present
CONTEXT_FIELDS = ("user_id", "action", "resource", "loan_id", "transaction_id", "amount")


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json") -> logging.Logger:
    """
    Configure the ``loan_engine`` logger hierarchy

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        fmt: "json" for structured output, anything else for plain text

    Returns:
        The engine root logger
    """
    logger = logging.getLogger(ROOT_LOGGER)

    # Replace handlers so repeated setup does not duplicate output
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False

    return logger


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, **context: Any) -> None:
    """
    Log an engine action with its actor and affected record

    Args:
        logger: Module logger
        level: Level name (info, warning, error)
        message: Human-readable message
        user_id: Acting user
        action: Engine operation, e.g. "make_payment"
        resource: Id of the record acted on
        **context: Further fields from CONTEXT_FIELDS (loan_id, transaction_id, amount)
    """
    extra = {key: value for key, value in context.items() if key in CONTEXT_FIELDS}
    extra.update(user_id=user_id, action=action, resource=resource)
    logger.log(getattr(logging, level.upper()), message, extra=extra)
