"""
Bridge configuration.

Loads the Spacebot webhook options from environment variables into an
immutable Settings value. Built once per process by the host and passed
into every turn.
"""
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from logging_setup import get_logger, Component
from .errors import ConfigurationError


DEFAULT_POLL_INTERVAL_MS = 350
DEFAULT_MAX_WAIT_MS = 5000
DEFAULT_REQUEST_TIMEOUT_MS = 3000
# Must stay below the voice platform's own per-turn deadline (8s).
MAX_SAFE_WAIT_MS = 6500
DEFAULT_CONVERSATION_PREFIX = "echo_show"

logger = get_logger(Component.CONFIG)


def _parse_positive_int(value: Optional[str], default: int) -> int:
    """
    Parse a positive integer option, stripping comments and whitespace.

    Handles cases like:
    - "300  # comment" -> 300
    - "300" -> 300
    - None, "", "abc", "0", "-5" -> default
    """
    if not value:
        return default

    if "#" in value:
        value = value.split("#")[0]
    value = value.strip()

    if not value:
        return default

    try:
        parsed = int(value)
    except ValueError:
        return default
    if parsed <= 0:
        return default
    return parsed


@dataclass(frozen=True)
class Settings:
    """Spacebot webhook settings."""

    base_url: str
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    max_wait_ms: int = DEFAULT_MAX_WAIT_MS
    conversation_prefix: str = DEFAULT_CONVERSATION_PREFIX
    user_hash_salt: str = ""
    agent_id: Optional[str] = None
    request_timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS

    def __post_init__(self):
        base_url = (self.base_url or "").strip().rstrip("/")
        if not base_url:
            raise ConfigurationError("SPACEBOT_WEBHOOK_BASE is required")
        # frozen: normalize through object.__setattr__
        object.__setattr__(self, "base_url", base_url)
        for name, default in (
            ("poll_interval_ms", DEFAULT_POLL_INTERVAL_MS),
            ("max_wait_ms", DEFAULT_MAX_WAIT_MS),
            ("request_timeout_ms", DEFAULT_REQUEST_TIMEOUT_MS),
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                object.__setattr__(self, name, default)
        object.__setattr__(self, "max_wait_ms", min(self.max_wait_ms, MAX_SAFE_WAIT_MS))
        if not self.conversation_prefix:
            object.__setattr__(self, "conversation_prefix", DEFAULT_CONVERSATION_PREFIX)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Load settings from environment variables (or the given mapping)."""
        if env is None:
            env = os.environ

        requested_wait_ms = _parse_positive_int(env.get("SPACEBOT_MAX_WAIT_MS"), DEFAULT_MAX_WAIT_MS)
        if requested_wait_ms > MAX_SAFE_WAIT_MS:
            logger.warning(
                "SPACEBOT_MAX_WAIT_MS above safety ceiling; clamping",
                requested_ms=requested_wait_ms,
                ceiling_ms=MAX_SAFE_WAIT_MS,
            )

        return cls(
            base_url=env.get("SPACEBOT_WEBHOOK_BASE", ""),
            poll_interval_ms=_parse_positive_int(
                env.get("SPACEBOT_POLL_INTERVAL_MS"), DEFAULT_POLL_INTERVAL_MS
            ),
            max_wait_ms=requested_wait_ms,
            conversation_prefix=env.get("SPACEBOT_CONVERSATION_PREFIX") or DEFAULT_CONVERSATION_PREFIX,
            user_hash_salt=env.get("SPACEBOT_USER_HASH_SALT") or "",
            agent_id=(env.get("SPACEBOT_AGENT_ID") or "").strip() or None,
            request_timeout_ms=_parse_positive_int(
                env.get("SPACEBOT_REQUEST_TIMEOUT_MS"), DEFAULT_REQUEST_TIMEOUT_MS
            ),
        )
