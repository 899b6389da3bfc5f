"""
Structured JSON turn events.

Shared by the skill server and the bridge core. Every event is one JSON line
on stdout so a log aggregator can follow a turn from request to response.
Events carry metadata only: lengths and flags, never utterance or reply text.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class Component(str, Enum):
    """Event sources."""

    SKILL_SERVER = "skill_server"
    BRIDGE = "bridge"


class Severity(str, Enum):
    """Event severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class EventEmitter:
    """Emits structured JSON events."""

    def __init__(self, component: Component):
        self.component = component

    def emit(
        self,
        event_type: str,
        conversation_id: str,
        severity: Severity = Severity.INFO,
        correlation_id: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        """
        Emit one event.

        Args:
            event_type: Stable event type string (e.g. "turn.completed")
            conversation_id: Pseudonymous conversation key
            severity: Event severity level
            correlation_id: Request/turn identifier; defaults to conversation_id
            **kwargs: Additional event-specific fields
        """
        event = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "conversation_id": conversation_id,
            "component": self.component.value,
            "event_type": event_type,
            "severity": severity.value,
            "correlation_id": correlation_id or conversation_id,
        }
        event.update(kwargs)

        sys.stdout.write(json.dumps(event, ensure_ascii=False, default=str))
        sys.stdout.write("\n")
        sys.stdout.flush()


bridge_emitter = EventEmitter(Component.BRIDGE)
skill_server_emitter = EventEmitter(Component.SKILL_SERVER)
