"""
Conversation identity.

Spacebot keeps the conversation state; the bridge only needs a stable key to
address it. The key is a truncated SHA-256 over the skill, user and device
IDs, so raw Alexa identifiers never leave the bridge.

This module provides helpers to:
- Pull identity fields out of a request envelope with sentinel fallbacks
- Hash them into a pseudonymous user hash
- Build the per-turn ConversationContext
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional


USER_HASH_LENGTH = 24

UNKNOWN_APP = "unknown_app"
UNKNOWN_USER = "unknown_user"
UNKNOWN_DEVICE = "unknown_device"
UNKNOWN_REQUEST = "unknown_request"


def first_non_empty(values: Iterable[Any], fallback: str) -> str:
    """Return the first non-blank string (stripped), else fallback."""
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return fallback


@dataclass(frozen=True)
class IdentityFields:
    """Identity of one turn as supplied by the voice platform."""

    app_id: str = UNKNOWN_APP
    user_id: str = UNKNOWN_USER
    device_id: str = UNKNOWN_DEVICE
    request_id: str = UNKNOWN_REQUEST

    @classmethod
    def of(
        cls,
        app_id: Optional[str] = None,
        user_id: Optional[str] = None,
        device_id: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> "IdentityFields":
        """Build identity fields, replacing missing/blank values with sentinels."""
        return cls(
            app_id=first_non_empty([app_id], UNKNOWN_APP),
            user_id=first_non_empty([user_id], UNKNOWN_USER),
            device_id=first_non_empty([device_id], UNKNOWN_DEVICE),
            request_id=first_non_empty([request_id], UNKNOWN_REQUEST),
        )


@dataclass(frozen=True)
class ConversationContext:
    """Routing identity for one turn. Never persisted."""

    conversation_id: str
    sender_id: str
    user_hash: str
    request_id: str


def _dig(data: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(data, Mapping):
            return None
        data = data.get(key)
    return data


def identity_from_envelope(envelope: Optional[Mapping[str, Any]]) -> IdentityFields:
    """
    Resolve identity fields from an Alexa request envelope.

    Priority per field:
    1) context.System.<field>
    2) session.<field> (application and user only)
    3) sentinel
    """
    envelope = envelope or {}
    system = _dig(envelope, "context", "System")
    session = _dig(envelope, "session")

    app_id = first_non_empty(
        [
            _dig(system, "application", "applicationId"),
            _dig(session, "application", "applicationId"),
        ],
        UNKNOWN_APP,
    )
    user_id = first_non_empty(
        [_dig(system, "user", "userId"), _dig(session, "user", "userId")],
        UNKNOWN_USER,
    )
    device_id = first_non_empty([_dig(system, "device", "deviceId")], UNKNOWN_DEVICE)
    request_id = first_non_empty([_dig(envelope, "request", "requestId")], UNKNOWN_REQUEST)

    return IdentityFields(
        app_id=app_id,
        user_id=user_id,
        device_id=device_id,
        request_id=request_id,
    )


def hash_user_id(identity: IdentityFields, salt: str = "") -> str:
    """Stable pseudonymous hash of (salt, app, user, device)."""
    app_id = first_non_empty([identity.app_id], UNKNOWN_APP)
    user_id = first_non_empty([identity.user_id], UNKNOWN_USER)
    device_id = first_non_empty([identity.device_id], UNKNOWN_DEVICE)
    material = f"{salt}|{app_id}|{user_id}|{device_id}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()[:USER_HASH_LENGTH]


def create_conversation_context(
    identity: IdentityFields,
    *,
    prefix: str = "echo_show",
    salt: str = "",
) -> ConversationContext:
    """Build the conversation context for one turn."""
    user_hash = hash_user_id(identity, salt or "")
    return ConversationContext(
        conversation_id=f"{prefix or 'echo_show'}:{user_hash}",
        sender_id=f"alexa:{user_hash}",
        user_hash=user_hash,
        request_id=first_non_empty([identity.request_id], UNKNOWN_REQUEST),
    )
