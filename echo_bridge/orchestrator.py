"""
One chat turn: identity -> prompt -> send -> collect -> extract.

Failures from send/collect are not retried here; they are recorded as a
turn.failed event and propagate to the adapter, which turns them into a
spoken apology. A timeout is not a failure:
the turn returns whatever text arrived, or a "still working" message.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional, Tuple

from logging_setup import get_logger, Component as LogComponent
from observability.events import Severity, bridge_emitter
from .config import Settings
from .conversation import IdentityFields, create_conversation_context
from .directives import VisualDirective, extract_visual_directive
from .errors import TIMEOUT_FALLBACK_SPEECH
from .prompt import build_prompt
from .spacebot_client import InboundMessage, SpacebotWebhookClient


logger = get_logger(LogComponent.BRIDGE)

DEFAULT_UPDATE_SPEECH = "I have an update for you."


@dataclass(frozen=True)
class TurnResult:
    conversation_id: str
    sender_id: str
    speech_text: str
    directive: Optional[VisualDirective]
    raw_messages: Tuple[InboundMessage, ...]
    timed_out: bool


async def handle_chat_turn(
    identity: IdentityFields,
    utterance: str,
    client: SpacebotWebhookClient,
    settings: Settings,
) -> TurnResult:
    """Run one turn against Spacebot and split the reply into speech and directive."""
    conversation = create_conversation_context(
        identity,
        prefix=settings.conversation_prefix,
        salt=settings.user_hash_salt,
    )
    turn_logger = logger.with_conversation(conversation.conversation_id)
    now = getattr(client, "now", time.monotonic)
    start_ts = now()

    bridge_emitter.emit(
        "turn.started",
        conversation.conversation_id,
        correlation_id=conversation.request_id,
        utterance_length=len(utterance.strip()),
    )

    try:
        await client.send_message(
            conversation.conversation_id,
            conversation.sender_id,
            build_prompt(utterance),
            agent_id=settings.agent_id,
        )
        reply = await client.collect_reply(conversation.conversation_id)
    except Exception as e:
        bridge_emitter.emit(
            "turn.failed",
            conversation.conversation_id,
            severity=Severity.ERROR,
            correlation_id=conversation.request_id,
            error_class=type(e).__name__,
            operation=getattr(e, "operation", None),
            status=getattr(e, "status", None),
            latency_ms=int((now() - start_ts) * 1000),
        )
        raise

    bridge_emitter.emit(
        "turn.reply_collected",
        conversation.conversation_id,
        severity=Severity.WARN if reply.timed_out else Severity.INFO,
        correlation_id=conversation.request_id,
        timed_out=reply.timed_out,
        received_messages=reply.received_messages,
        message_count=len(reply.raw_messages),
        text_length=len(reply.text),
    )

    parsed = extract_visual_directive(reply.text)
    speech_text = parsed.speech_text or DEFAULT_UPDATE_SPEECH
    if reply.timed_out and not parsed.speech_text:
        speech_text = TIMEOUT_FALLBACK_SPEECH
        turn_logger.warning(
            "No usable reply before deadline",
            received_messages=reply.received_messages,
        )

    latency_ms = int((now() - start_ts) * 1000)
    bridge_emitter.emit(
        "turn.completed",
        conversation.conversation_id,
        correlation_id=conversation.request_id,
        has_directive=parsed.directive is not None,
        timed_out=reply.timed_out,
        speech_length=len(speech_text),
        latency_ms=latency_ms,
    )

    return TurnResult(
        conversation_id=conversation.conversation_id,
        sender_id=conversation.sender_id,
        speech_text=speech_text,
        directive=parsed.directive,
        raw_messages=reply.raw_messages,
        timed_out=reply.timed_out,
    )
