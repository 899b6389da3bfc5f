"""
Visual directive extraction.

Spacebot replies are free text. When the agent wants to update the screen it
embeds one JSON object, normally in a fenced ```json block:

    {"echo_show": {"template": "content_list_v1", "title": "...",
                   "body": "...", "items": ["..."], "image_url": "https://..."}}

The reply text is untrusted. Anything that does not validate is left in the
speech untouched; nothing in here raises on bad input.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Tuple
from urllib.parse import urlsplit

from logging_setup import get_logger, Component


logger = get_logger(Component.DIRECTIVES)

TEMPLATE_CONTENT_LIST_V1 = "content_list_v1"

MAX_TITLE_LEN = 80
MAX_BODY_LEN = 700
MAX_ITEM_LEN = 100
MAX_ITEMS = 7

TRUNCATION_MARKER = "…"
DISPLAY_UPDATED_SPEECH = "I've updated the display."

_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
# Whitespace, control characters and characters a URL must percent-encode.
_UNSAFE_URL_CHARS_RE = re.compile(r"[\s\x00-\x1f\x7f<>\"`{}|\\^]")


@dataclass(frozen=True)
class VisualDirective:
    """Sanitized content_list_v1 payload. Never all-empty."""

    title: str = ""
    body: str = ""
    items: Tuple[str, ...] = ()
    image_url: Optional[str] = None
    template: str = field(default=TEMPLATE_CONTENT_LIST_V1)

    def to_payload(self) -> Dict[str, Any]:
        """Payload handed to the presentation layer."""
        payload: Dict[str, Any] = {
            "template": self.template,
            "title": self.title,
            "body": self.body,
            "items": list(self.items),
        }
        if self.image_url:
            payload["imageUrl"] = self.image_url
        return payload


@dataclass(frozen=True)
class ExtractionResult:
    speech_text: str
    directive: Optional[VisualDirective] = None


@dataclass(frozen=True)
class FencedBlock:
    """A ``` fenced segment of the reply; start/end cover the fences."""

    start: int
    end: int
    inner: str


def clean_speech(text: Any) -> str:
    """Collapse whitespace runs and trim."""
    if not isinstance(text, str):
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def truncate(text: Any, max_len: int) -> str:
    """Trim, then cut to max_len characters with a trailing marker if needed."""
    if not isinstance(text, str):
        return ""
    trimmed = text.strip()
    if len(trimmed) <= max_len:
        return trimmed
    return trimmed[: max_len - 1] + TRUNCATION_MARKER


def normalize_image_url(value: Any) -> Optional[str]:
    """Accept only absolute https URLs."""
    if not isinstance(value, str) or not value.strip():
        return None
    candidate = value.strip()
    if _UNSAFE_URL_CHARS_RE.search(candidate):
        return None
    try:
        parts = urlsplit(candidate)
    except ValueError:
        return None
    if parts.scheme != "https" or not parts.hostname:
        return None
    return candidate


def normalize_directive(payload: Any) -> Optional[VisualDirective]:
    """
    Validate and sanitize a decoded payload.

    Returns None unless payload["echo_show"]["template"] is content_list_v1 and
    at least one field survives sanitization.
    """
    root = payload.get("echo_show") if isinstance(payload, dict) else None
    if not isinstance(root, dict):
        return None
    if root.get("template") != TEMPLATE_CONTENT_LIST_V1:
        return None

    title = truncate(root.get("title"), MAX_TITLE_LEN)
    body = truncate(root.get("body"), MAX_BODY_LEN)

    raw_items = root.get("items")
    items = []
    if isinstance(raw_items, list):
        for value in raw_items:
            if not isinstance(value, str):
                continue
            item = truncate(value, MAX_ITEM_LEN)
            if item:
                items.append(item)
    items = items[:MAX_ITEMS]

    image_url = normalize_image_url(root.get("image_url"))

    if not title and not body and not items and not image_url:
        return None

    return VisualDirective(title=title, body=body, items=tuple(items), image_url=image_url)


def parse_candidate(candidate: str) -> Optional[VisualDirective]:
    try:
        payload = json.loads(candidate)
    except (ValueError, RecursionError):
        return None
    return normalize_directive(payload)


def iter_fenced_blocks(text: str) -> Iterator[FencedBlock]:
    """Yield fenced blocks in order of appearance."""
    for match in _FENCED_BLOCK_RE.finditer(text):
        yield FencedBlock(start=match.start(), end=match.end(), inner=match.group(1))


def derive_speech(directive: VisualDirective) -> str:
    """Something to say when the reply carried only a directive."""
    if directive.body:
        return directive.body
    if directive.title:
        return directive.title
    if directive.items:
        return ". ".join(directive.items)
    return DISPLAY_UPDATED_SPEECH


def extract_visual_directive(response_text: Any) -> ExtractionResult:
    """
    Split reply text into speech and an optional directive.

    1. First fenced block that validates wins; it is cut out of the speech.
    2. Otherwise the whole trimmed text may itself be the payload.
    3. Otherwise the normalized text is returned as speech with no directive.
    """
    raw = response_text if isinstance(response_text, str) else ""
    speech_text = clean_speech(raw)
    directive: Optional[VisualDirective] = None

    for block in iter_fenced_blocks(raw):
        directive = parse_candidate(block.inner)
        if directive is not None:
            speech_text = clean_speech(f"{raw[:block.start]} {raw[block.end:]}")
            logger.debug("Directive extracted from fenced block", block_start=block.start)
            break

    if directive is None:
        directive = parse_candidate(raw.strip())
        if directive is not None:
            speech_text = ""
            logger.debug("Directive extracted from whole reply")

    if directive is not None and not speech_text:
        speech_text = derive_speech(directive)

    return ExtractionResult(speech_text=speech_text, directive=directive)
