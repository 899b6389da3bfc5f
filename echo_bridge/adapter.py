"""
Boundary between the voice-dispatch host and the bridge core.

The host hands over one turn (identity fields, utterance, whether the device
has a screen) and gets back speech, card text and an optional directive
payload. Whatever goes wrong, the host always gets a well-formed response:
configuration problems short-circuit to a "not configured" message without
network I/O, and transport failures become a generic apology.

The runtime (settings + client) is built once by the host and passed in.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from logging_setup import get_logger, Component
from .config import Settings
from .conversation import IdentityFields, identity_from_envelope
from .errors import (
    GENERIC_ERROR_REPROMPT,
    NOT_CONFIGURED_REPROMPT,
    NOT_CONFIGURED_SPEECH,
    ConfigurationError,
    get_user_message,
)
from .orchestrator import handle_chat_turn
from .spacebot_client import SpacebotWebhookClient


logger = get_logger(Component.BRIDGE)

CARD_TITLE = "Spacebot Echo"
VISUAL_INTERFACE = "Alexa.Presentation.APL"

CHAT_INTENT = "ChatIntent"
HELP_INTENT = "AMAZON.HelpIntent"
CANCEL_INTENT = "AMAZON.CancelIntent"
STOP_INTENT = "AMAZON.StopIntent"
FALLBACK_INTENT = "AMAZON.FallbackIntent"

LAUNCH_SPEECH = "Spacebot Echo is ready. What should I ask your Spacebot agent?"
LAUNCH_REPROMPT = "What should I send to your Spacebot channel?"
HELP_SPEECH = "Say anything and I will send it to your Spacebot channel, then read the reply."
HELP_REPROMPT = "What should I ask?"
FALLBACK_SPEECH = "Please say what you want me to send to Spacebot."
FALLBACK_REPROMPT = "What should I ask Spacebot?"
EMPTY_UTTERANCE_SPEECH = "I didn't catch that. What should I ask Spacebot?"
EMPTY_UTTERANCE_REPROMPT = "Tell me what to ask Spacebot."
CHAT_REPROMPT = "Anything else for Spacebot?"
GOODBYE_SPEECH = "Goodbye."


@dataclass(frozen=True)
class BridgeRuntime:
    """Settings and client, built once per process."""

    settings: Settings
    client: SpacebotWebhookClient

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "BridgeRuntime":
        """Raises ConfigurationError when SPACEBOT_WEBHOOK_BASE is missing."""
        settings = Settings.from_env(env)
        return cls(settings=settings, client=SpacebotWebhookClient.from_settings(settings))


def load_runtime(env: Optional[Mapping[str, str]] = None) -> Optional[BridgeRuntime]:
    """Build the runtime, or None (logged) when the bridge is not configured."""
    try:
        runtime = BridgeRuntime.from_env(env)
    except ConfigurationError as e:
        logger.error("Echo bridge configuration error", error=str(e))
        return None
    logger.info(
        "Echo bridge configured",
        base_url=runtime.settings.base_url,
        poll_interval_ms=runtime.settings.poll_interval_ms,
        max_wait_ms=runtime.settings.max_wait_ms,
        has_agent_id=runtime.settings.agent_id is not None,
    )
    return runtime


@dataclass(frozen=True)
class TurnRequest:
    """What the voice-dispatch host supplies per turn."""

    app_id: Optional[str]
    user_id: Optional[str]
    device_id: Optional[str]
    request_id: Optional[str]
    utterance: str
    device_supports_visual_rendering: bool = False

    @property
    def identity(self) -> IdentityFields:
        return IdentityFields.of(
            app_id=self.app_id,
            user_id=self.user_id,
            device_id=self.device_id,
            request_id=self.request_id,
        )

    @classmethod
    def from_envelope(cls, envelope: Mapping[str, Any]) -> "TurnRequest":
        """Build a turn from an Alexa request envelope (ChatIntent `query` slot)."""
        identity = identity_from_envelope(envelope)
        return cls(
            app_id=identity.app_id,
            user_id=identity.user_id,
            device_id=identity.device_id,
            request_id=identity.request_id,
            utterance=get_query_from_envelope(envelope),
            device_supports_visual_rendering=supports_visual_rendering(envelope),
        )


@dataclass(frozen=True)
class BridgeResponse:
    """What the host receives back."""

    speech_text: str
    card_text: Optional[str] = None
    directive: Optional[Dict[str, Any]] = None
    reprompt_text: Optional[str] = None
    should_end_session: bool = False
    card_title: str = CARD_TITLE

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "speechText": self.speech_text,
            "cardTitle": self.card_title,
            "cardText": self.card_text,
            "repromptText": self.reprompt_text,
            "shouldEndSession": self.should_end_session,
        }
        if self.directive is not None:
            result["directive"] = self.directive
        return result


def _get(data: Any, key: str) -> Any:
    return data.get(key) if isinstance(data, Mapping) else None


def get_query_from_envelope(envelope: Mapping[str, Any]) -> str:
    slots = _get(_get(_get(envelope, "request"), "intent"), "slots")
    value = _get(_get(slots, "query"), "value")
    return value.strip() if isinstance(value, str) else ""


def supports_visual_rendering(envelope: Mapping[str, Any]) -> bool:
    device = _get(_get(_get(envelope, "context"), "System"), "device")
    interfaces = _get(device, "supportedInterfaces")
    return isinstance(interfaces, Mapping) and VISUAL_INTERFACE in interfaces


def not_configured_response() -> BridgeResponse:
    return BridgeResponse(
        speech_text=NOT_CONFIGURED_SPEECH,
        reprompt_text=NOT_CONFIGURED_REPROMPT,
    )


def launch_response(runtime: Optional[BridgeRuntime]) -> BridgeResponse:
    if runtime is None:
        return not_configured_response()
    return BridgeResponse(speech_text=LAUNCH_SPEECH, reprompt_text=LAUNCH_REPROMPT)


def help_response(runtime: Optional[BridgeRuntime]) -> BridgeResponse:
    if runtime is None:
        return not_configured_response()
    return BridgeResponse(speech_text=HELP_SPEECH, reprompt_text=HELP_REPROMPT)


def fallback_response(runtime: Optional[BridgeRuntime]) -> BridgeResponse:
    if runtime is None:
        return not_configured_response()
    return BridgeResponse(speech_text=FALLBACK_SPEECH, reprompt_text=FALLBACK_REPROMPT)


def stop_response() -> BridgeResponse:
    return BridgeResponse(speech_text=GOODBYE_SPEECH, should_end_session=True)


async def respond_to_turn(
    request: TurnRequest,
    runtime: Optional[BridgeRuntime],
) -> BridgeResponse:
    """
    Answer one chat turn. Never raises.

    The directive is dropped for devices without visual rendering even when
    one was extracted.
    """
    if runtime is None:
        return not_configured_response()

    utterance = (request.utterance or "").strip()
    if not utterance:
        return BridgeResponse(
            speech_text=EMPTY_UTTERANCE_SPEECH,
            reprompt_text=EMPTY_UTTERANCE_REPROMPT,
        )

    try:
        result = await handle_chat_turn(
            request.identity,
            utterance,
            runtime.client,
            runtime.settings,
        )
    except Exception as e:
        # Any failure still yields a spoken answer for the host.
        logger.exception(
            "Echo bridge turn failed",
            error_type=type(e).__name__,
            operation=getattr(e, "operation", None),
            status=getattr(e, "status", None),
        )
        return BridgeResponse(
            speech_text=get_user_message(e),
            reprompt_text=GENERIC_ERROR_REPROMPT,
        )

    directive = None
    if result.directive is not None and request.device_supports_visual_rendering:
        directive = result.directive.to_payload()

    return BridgeResponse(
        speech_text=result.speech_text,
        card_text=result.speech_text,
        directive=directive,
        reprompt_text=CHAT_REPROMPT,
    )


async def handle_envelope(
    envelope: Mapping[str, Any],
    runtime: Optional[BridgeRuntime],
) -> Optional[BridgeResponse]:
    """
    Route an Alexa request envelope by request type and intent name.

    Returns None for SessionEndedRequest (nothing to say).
    """
    request = _get(envelope, "request")
    request_type = _get(request, "type")
    intent_name = _get(_get(request, "intent"), "name")

    if request_type == "LaunchRequest":
        return launch_response(runtime)
    if request_type == "SessionEndedRequest":
        return None
    if request_type != "IntentRequest":
        logger.warning("Unhandled request type", request_type=request_type)
        return fallback_response(runtime)

    if intent_name == CHAT_INTENT:
        return await respond_to_turn(TurnRequest.from_envelope(envelope), runtime)
    if intent_name == HELP_INTENT:
        return help_response(runtime)
    if intent_name in (CANCEL_INTENT, STOP_INTENT):
        return stop_response()
    return fallback_response(runtime)
