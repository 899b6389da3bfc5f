"""
Bridge -> Spacebot webhook client.

Spacebot's webhook channel is asynchronous: a message is posted to /send and
the reply is fetched by polling /poll/{conversation_id}. The backend may
answer as a stream (stream_start, stream_chunk..., stream_end) or with a
single text message, and gives no out-of-band signal of which. The reply
collector therefore stops on whichever completion rule applies first:

- A: a stream_end arrived
- B: no stream_start was ever seen and a text message arrived

and otherwise gives up at the wall-clock deadline, returning the partial text
with timed_out=True.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Tuple
from urllib.parse import quote

import aiohttp

from logging_setup import get_logger, Component
from .config import (
    DEFAULT_MAX_WAIT_MS,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_REQUEST_TIMEOUT_MS,
    Settings,
)
from .errors import ConfigurationError, TransportError


logger = get_logger(Component.SPACEBOT_CLIENT)

# A poll started just before the deadline still gets this much time.
MIN_POLL_TIMEOUT_S = 0.25


class MessageType:
    """Inbound message types understood by the reply collector."""

    STREAM_START = "stream_start"
    STREAM_CHUNK = "stream_chunk"
    STREAM_END = "stream_end"
    TEXT = "text"


@dataclass(frozen=True)
class InboundMessage:
    """One message returned by /poll. Unknown types are kept verbatim."""

    type: str
    content: Optional[str] = None

    @classmethod
    def from_wire(cls, data: dict) -> "InboundMessage":
        message_type = data.get("type")
        content = data.get("content")
        return cls(
            type=message_type if isinstance(message_type, str) else "other",
            content=content if isinstance(content, str) else None,
        )


@dataclass(frozen=True)
class ReplyCollection:
    """Outcome of one bounded poll loop."""

    text: str
    raw_messages: Tuple[InboundMessage, ...]
    timed_out: bool
    received_messages: bool


class SpacebotWebhookClient:
    """
    Client for one Spacebot webhook channel.

    Holds no per-conversation state; one instance can serve concurrent turns.
    `session`, `now` and `sleep` are injectable for tests.
    """

    def __init__(
        self,
        base_url: str,
        *,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        max_wait_ms: int = DEFAULT_MAX_WAIT_MS,
        request_timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS,
        session: Optional[aiohttp.ClientSession] = None,
        now: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        base_url = (base_url or "").strip().rstrip("/")
        if not base_url:
            raise ConfigurationError("Spacebot webhook base_url is required")
        self.base_url = base_url
        self.poll_interval_ms = poll_interval_ms
        self.max_wait_ms = max_wait_ms
        self.request_timeout_ms = request_timeout_ms
        self._session = session
        self.now = now
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "SpacebotWebhookClient":
        return cls(
            settings.base_url,
            poll_interval_ms=settings.poll_interval_ms,
            max_wait_ms=settings.max_wait_ms,
            request_timeout_ms=settings.request_timeout_ms,
            **kwargs,
        )

    @asynccontextmanager
    async def _open_session(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self._session is not None:
            yield self._session
            return
        async with aiohttp.ClientSession() as session:
            yield session

    def _timeout(self, limit_s: Optional[float] = None) -> aiohttp.ClientTimeout:
        total = self.request_timeout_ms / 1000
        if limit_s is not None:
            total = max(min(total, limit_s), MIN_POLL_TIMEOUT_S)
        return aiohttp.ClientTimeout(total=total)

    async def send_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        agent_id: Optional[str] = None,
    ) -> None:
        """
        POST one message to /send.

        Raises TransportError on a non-2xx status or network failure. No retry.
        """
        endpoint = f"{self.base_url}/send"
        payload = {
            "conversation_id": conversation_id,
            "sender_id": sender_id,
            "content": content,
        }
        if agent_id:
            payload["agent_id"] = agent_id

        start_ts = self.now()
        try:
            async with self._open_session() as s:
                async with s.post(endpoint, json=payload, timeout=self._timeout()) as resp:
                    status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                "Spacebot send failed",
                conversation_id=conversation_id,
                error_type=type(e).__name__,
                latency_ms=int((self.now() - start_ts) * 1000),
            )
            raise TransportError(
                f"Spacebot /send failed: {type(e).__name__}", operation="send"
            ) from e

        logger.info(
            "Spacebot send response",
            conversation_id=conversation_id,
            status=status,
            content_length=len(content),
            latency_ms=int((self.now() - start_ts) * 1000),
        )
        if not 200 <= status < 300:
            raise TransportError(
                f"Spacebot /send failed: HTTP {status}", operation="send", status=status
            )

    async def poll_messages(
        self,
        conversation_id: str,
        *,
        timeout_s: Optional[float] = None,
    ) -> List[InboundMessage]:
        """
        GET /poll/{conversation_id} once.

        A body that is not JSON, or has no `messages` list, counts as no messages.
        Raises TransportError on a non-2xx status or network failure.
        """
        endpoint = f"{self.base_url}/poll/{quote(conversation_id, safe='')}"
        try:
            async with self._open_session() as s:
                async with s.get(
                    endpoint,
                    headers={"accept": "application/json"},
                    timeout=self._timeout(timeout_s),
                ) as resp:
                    status = resp.status
                    body = None
                    if 200 <= status < 300:
                        try:
                            body = await resp.json(content_type=None)
                        except ValueError:
                            logger.debug("Poll body is not JSON", conversation_id=conversation_id)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                "Spacebot poll failed",
                conversation_id=conversation_id,
                error_type=type(e).__name__,
            )
            raise TransportError(
                f"Spacebot /poll failed: {type(e).__name__}", operation="poll"
            ) from e

        if not 200 <= status < 300:
            logger.warning("Spacebot poll rejected", conversation_id=conversation_id, status=status)
            raise TransportError(
                f"Spacebot /poll failed: HTTP {status}", operation="poll", status=status
            )

        raw = body.get("messages") if isinstance(body, dict) else None
        if not isinstance(raw, list):
            return []

        messages = []
        for entry in raw:
            if not isinstance(entry, dict):
                logger.debug("Skipping non-object poll entry", conversation_id=conversation_id)
                continue
            messages.append(InboundMessage.from_wire(entry))
        return messages

    async def collect_reply(self, conversation_id: str) -> ReplyCollection:
        """
        Poll until the reply is complete or max_wait_ms has elapsed.

        A stream that keeps sending chunks without ever ending runs to the
        deadline and returns the partial text with timed_out=True.
        """
        start_ts = self.now()
        deadline = start_ts + self.max_wait_ms / 1000
        text_parts: List[str] = []
        raw_messages: List[InboundMessage] = []
        saw_any_message = False
        saw_stream_start = False
        completed = False
        polls = 0

        while self.now() < deadline:
            batch = await self.poll_messages(
                conversation_id, timeout_s=deadline - self.now()
            )
            polls += 1
            if batch:
                saw_any_message = True

            saw_stream_end = False
            saw_plain_text = False

            for message in batch:
                raw_messages.append(message)
                if message.type == MessageType.STREAM_START:
                    saw_stream_start = True
                elif message.type == MessageType.STREAM_CHUNK:
                    if message.content is not None:
                        text_parts.append(message.content)
                elif message.type == MessageType.STREAM_END:
                    saw_stream_end = True
                elif message.type == MessageType.TEXT:
                    saw_plain_text = True
                    if message.content is not None:
                        text_parts.append(message.content)
                else:
                    logger.debug(
                        "Ignoring unrecognized message type",
                        conversation_id=conversation_id,
                        message_type=message.type,
                    )

            if saw_stream_end:
                completed = True
                break

            if not saw_stream_start and saw_plain_text:
                completed = True
                break

            remaining_s = deadline - self.now()
            if remaining_s <= 0:
                break
            await self._sleep(min(self.poll_interval_ms / 1000, remaining_s))

        reply = ReplyCollection(
            text="".join(text_parts).strip(),
            raw_messages=tuple(raw_messages),
            timed_out=not completed,
            received_messages=saw_any_message,
        )
        log = logger.warning if reply.timed_out else logger.info
        log(
            "Spacebot reply collected",
            conversation_id=conversation_id,
            polls=polls,
            message_count=len(raw_messages),
            streaming=saw_stream_start,
            timed_out=reply.timed_out,
            received_messages=saw_any_message,
            text_length=len(reply.text),
            latency_ms=int((self.now() - start_ts) * 1000),
        )
        return reply
