"""Extraction of the OPTIONS / SUGGESTIONS protocol from assistant replies.

Replies are free prose that may embed a numbered ``OPTIONS:`` list and one
``SUGGESTIONS:`` JSON object. Both are optional, and malformed blocks are
dropped rather than reported as failures since the text comes from a model.

The SUGGESTIONS span ends at the first ``}`` followed by a blank line or the
end of input. A string value containing ``}`` followed by a blank line would
cut the object short; such replies fail to decode and are dropped.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

import orjson
from pydantic import ValidationError

from flowforge.core.config import settings
from flowforge.core.errors import ProtocolParseError

from .schemas import ParsedResponse, SuggestionGroup


logger = logging.getLogger(__name__)

OPTIONS_PATTERN = re.compile(r"OPTIONS:\s*\n(?P<body>[\s\S]*?)(?=\n\n|SUGGESTIONS:|\Z)")
SUGGESTIONS_PATTERN = re.compile(r"SUGGESTIONS:\s*\n(?P<json>\{[\s\S]*?\})\s*(?:\n\n|\Z)")
NUMBERED_LINE = re.compile(r"^\d+\.\s*(?P<text>.*)$")


def parse_options(body: str) -> List[str]:
    """Return the text of each ``N. text`` line in ``body``, skipping empty entries."""
    options: List[str] = []
    for line in body.split("\n"):
        match = NUMBERED_LINE.match(line.strip())
        if not match:
            continue
        text = match.group("text").strip()
        if text:
            options.append(text)
    return options


def decode_suggestions(payload: str) -> SuggestionGroup:
    """Decode a SUGGESTIONS JSON span, raising ``ProtocolParseError`` when it is unusable."""
    try:
        data = orjson.loads(payload.strip())
    except orjson.JSONDecodeError as exc:
        raise ProtocolParseError(f"SUGGESTIONS block is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ProtocolParseError("SUGGESTIONS block must be a JSON object")
    try:
        return SuggestionGroup.model_validate(data)
    except ValidationError as exc:
        raise ProtocolParseError(f"SUGGESTIONS block does not match the suggestion schema: {exc}") from exc


def parse_response(raw_text: str, min_options: Optional[int] = None) -> ParsedResponse:
    """Split an assistant reply into display text, selectable options and a suggestion group.

    ``min_options`` defaults to ``settings.options_min_count``; shorter option
    lists are discarded entirely.
    """
    text = (raw_text or "").replace("\r\n", "\n").replace("\r", "\n")
    threshold = settings.options_min_count if min_options is None else min_options

    options: Optional[List[str]] = None
    options_match = OPTIONS_PATTERN.search(text)
    if options_match:
        parsed_options = parse_options(options_match.group("body"))
        logger.debug("Found %d options", len(parsed_options))
        if parsed_options and len(parsed_options) >= threshold:
            options = parsed_options

    suggestions: Optional[SuggestionGroup] = None
    suggestions_match = SUGGESTIONS_PATTERN.search(text)
    if suggestions_match:
        try:
            suggestions = decode_suggestions(suggestions_match.group("json"))
        except ProtocolParseError as exc:
            logger.warning("Ignoring SUGGESTIONS block: %s", exc)
            logger.debug("Raw SUGGESTIONS text: %s", suggestions_match.group("json"))

    message = text
    if options_match:
        message = message[: options_match.start()] + message[options_match.end():]
    message = SUGGESTIONS_PATTERN.sub("", message, count=1)

    return ParsedResponse(display_message=message.strip(), options=options, suggestions=suggestions)
