"""
Response Parser - turn free-form advisor text into an AdvisorReply.

Models rarely return clean JSON. Parsing runs a chain of fallible parsers,
first success wins:

    strict JSON -> repaired JSON -> regex field extraction -> default

Every parser returns a ParseResult; the default parser always succeeds,
so parse_response() never raises.
"""

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from .models import AdvisorReply

logger = logging.getLogger(__name__)

THINK_BLOCK = re.compile(r"<think>[\s\S]*?</think>")
JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

BARE_KEY = re.compile(r"([{,]\s*)([a-zA-Z_][a-zA-Z0-9_]*)\s*:")
STRING_NEWLINE_STRING = re.compile(r'"\s*\n\s*"')
NUMBER_NEWLINE_STRING = re.compile(r'(\d)\s*\n\s*"')
BRACE_NEWLINE_STRING = re.compile(r'}\s*\n\s*"')
ADJACENT_STRINGS = re.compile(r'"(\s*)"(?=[a-zA-Z])')
TRAILING_COMMA_OBJECT = re.compile(r",\s*}")
TRAILING_COMMA_ARRAY = re.compile(r",\s*]")

ACTION_FIELD = re.compile(r"[\"']?action[\"']?\s*[:=]\s*[\"']?(buy|sell|hold)[\"']?", re.IGNORECASE)
CONFIDENCE_FIELD = re.compile(r"[\"']?confidence[\"']?\s*[:=]\s*(\d+)", re.IGNORECASE)
REASONING_FIELD = re.compile(r"[\"']?reasoning[\"']?\s*[:=]\s*[\"']([^\"']+)", re.IGNORECASE)


@dataclass(frozen=True)
class ParseResult:
    """Outcome of one parser: a reply on success, an error message otherwise."""

    reply: AdvisorReply | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.reply is not None


def strip_think_blocks(text: str) -> str:
    """Remove <think>...</think> reasoning blocks some local models emit."""
    if "<think>" not in text:
        return text
    return THINK_BLOCK.sub("", text).strip()


def _reply_from_object(data: object) -> ParseResult:
    if not isinstance(data, dict):
        return ParseResult(error="JSON value is not an object")
    if "action" not in data:
        return ParseResult(error="JSON object has no action")
    return ParseResult(
        reply=AdvisorReply.from_fields(data.get("action"), data.get("confidence"), data.get("reasoning"))
    )


def parse_strict_json(text: str) -> ParseResult:
    """Parse the first {...} span as JSON, unmodified."""
    match = JSON_OBJECT.search(text)
    if not match:
        return ParseResult(error="no JSON object found")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        return ParseResult(error=f"invalid JSON: {e}")
    return _reply_from_object(data)


def repair_json(text: str) -> str:
    """
    Best-effort repair of almost-JSON.

    Extracts the outermost braces, quotes bare keys, inserts missing commas
    between fields on separate lines, drops trailing commas and appends
    missing closing braces.

    Example:
        >>> repair_json('{action: "buy", confidence: 70,}')
        '{"action": "buy", "confidence": 70}'
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1:
        return "{}"
    fixed = text[start : end + 1] if end > start else text[start:]

    fixed = BARE_KEY.sub(r'\1"\2":', fixed)

    fixed = STRING_NEWLINE_STRING.sub('",\n"', fixed)
    fixed = NUMBER_NEWLINE_STRING.sub(r'\1,\n"', fixed)
    fixed = BRACE_NEWLINE_STRING.sub('},\n"', fixed)
    fixed = ADJACENT_STRINGS.sub(r'",\1"', fixed)

    fixed = TRAILING_COMMA_OBJECT.sub("}", fixed)
    fixed = TRAILING_COMMA_ARRAY.sub("]", fixed)

    missing = fixed.count("{") - fixed.count("}")
    if missing > 0:
        fixed += "}" * missing

    return fixed


def parse_repaired_json(text: str) -> ParseResult:
    """Repair the text, then parse it as JSON."""
    if "{" not in text:
        return ParseResult(error="no opening brace")
    try:
        data = json.loads(repair_json(text))
    except json.JSONDecodeError as e:
        return ParseResult(error=f"repair failed: {e}")
    return _reply_from_object(data)


def parse_regex_fields(text: str) -> ParseResult:
    """Pull action/confidence/reasoning out with field regexes."""
    action = ACTION_FIELD.search(text)
    if not action:
        return ParseResult(error="no action field found")

    confidence = CONFIDENCE_FIELD.search(text)
    reasoning = REASONING_FIELD.search(text)
    return ParseResult(
        reply=AdvisorReply.from_fields(
            action.group(1),
            int(confidence.group(1)) if confidence else 50,
            reasoning.group(1) if reasoning else "unable to parse",
        )
    )


def parse_default(text: str) -> ParseResult:
    """Always succeeds with hold/50."""
    return ParseResult(reply=AdvisorReply.default())


PARSER_CHAIN: tuple[Callable[[str], ParseResult], ...] = (
    parse_strict_json,
    parse_repaired_json,
    parse_regex_fields,
    parse_default,
)


def parse_response(text: str) -> AdvisorReply:
    """
    Parse raw advisor text into an AdvisorReply.

    Args:
        text: Raw model output

    Returns:
        AdvisorReply (never raises; parsed=False when only the default matched)
    """
    cleaned = strip_think_blocks(text or "")

    for parser in PARSER_CHAIN:
        result = parser(cleaned)
        if result.ok:
            return result.reply
        logger.debug(f"{parser.__name__}: {result.error}")

    # parse_default never fails
    return AdvisorReply.default()
