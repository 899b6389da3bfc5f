"""
Bridge error types and the spoken phrases they map to.

Timeouts are not errors: the reply collector reports them as a flag so a turn
always ends with best-effort speech. Malformed directive content is never an
error either; extraction degrades to speech-only output.
"""
from typing import Optional


NOT_CONFIGURED_SPEECH = (
    "The Spacebot webhook is not configured yet. "
    "Please set SPACEBOT WEBHOOK BASE in your skill code environment settings."
)
NOT_CONFIGURED_REPROMPT = "After setup, ask me to send a message to Spacebot."

GENERIC_ERROR_SPEECH = "I couldn't reach Spacebot right now. Please try again in a moment."
GENERIC_ERROR_REPROMPT = "Try asking again."

TIMEOUT_FALLBACK_SPEECH = (
    "Spacebot is still working on that. Please try again in a moment."
)


class BridgeError(Exception):
    """Base class for failures that end a turn early."""


class ConfigurationError(BridgeError):
    """A required option is missing or unusable. Fatal at startup."""


class TransportError(BridgeError):
    """A send or poll call failed: non-2xx status or network failure."""

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        status: Optional[int] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.status = status


def get_user_message(error: BaseException) -> str:
    """
    Spoken message for a failed turn.

    Never technical: no status codes, no exception names.
    """
    if isinstance(error, ConfigurationError):
        return NOT_CONFIGURED_SPEECH
    return GENERIC_ERROR_SPEECH
