"""
Shared logging infrastructure for the Echo Show bridge.

Both the skill server and the bridge core log through this module so every
line carries the same structured shape.

Features:
- JSON-formatted structured logs
- Configurable log levels
- Conversation ID correlation across all logs of a turn
- Component tagging
- Keyword fields instead of interpolated messages
"""

import json
import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class Component(str, Enum):
    """System components for log tagging."""
    SKILL_SERVER = "skill_server"
    BRIDGE = "bridge"
    SPACEBOT_CLIENT = "spacebot_client"
    DIRECTIVES = "directives"
    CONFIG = "config"


# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "taskName", "component", "conversation_id", "message",
})


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Each line holds:
    - ISO8601 timestamp
    - Severity level
    - Component identifier
    - Conversation ID (if available in extra)
    - Message and additional fields
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "severity": record.levelname.lower(),
            "component": getattr(record, "component", "unknown"),
            "message": record.getMessage(),
        }

        if hasattr(record, "conversation_id"):
            log_data["conversation_id"] = record.conversation_id

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class StructuredLogger:
    """
    Wrapper around Python's logging with structured keyword fields.

    Usage:
        logger = StructuredLogger(Component.BRIDGE, conversation_id="echo_show:ab12")
        logger.info("Reply collected", timed_out=False, text_length=42)
    """

    def __init__(
        self,
        component: str | Component,
        conversation_id: Optional[str] = None,
        logger_name: Optional[str] = None,
    ):
        self.component = component.value if isinstance(component, Component) else component
        self.conversation_id = conversation_id
        self.logger = logging.getLogger(logger_name or f"echo_bridge.{self.component}")

    def _log(self, level: int, message: str, **kwargs: Any) -> None:
        exc_info = kwargs.pop("exc_info", None)
        stack_info = kwargs.pop("stack_info", False)

        extra = {"component": self.component, **kwargs}
        if self.conversation_id:
            extra["conversation_id"] = self.conversation_id

        self.logger.log(
            level,
            message,
            exc_info=exc_info,
            stack_info=stack_info,
            stacklevel=3,
            extra=extra,
        )

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log an error message with the active exception attached."""
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, message, **kwargs)

    def with_conversation(self, conversation_id: str) -> "StructuredLogger":
        """Create a new logger bound to a conversation ID."""
        return StructuredLogger(
            self.component,
            conversation_id=conversation_id,
            logger_name=self.logger.name,
        )


def setup_logging(level: str = "INFO", use_json: bool = True) -> None:
    """
    Configure the root logger. Call once at process startup.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: Use the JSON formatter (True) or plain text (False)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    if use_json:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s")
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))


def get_logger(
    component: str | Component,
    conversation_id: Optional[str] = None,
) -> StructuredLogger:
    """
    Get a structured logger for a component.

    Example:
        logger = get_logger(Component.SPACEBOT_CLIENT)
        logger.info("Poll returned", message_count=3)
    """
    return StructuredLogger(component, conversation_id=conversation_id)
