"""
Tolerant parsing of batch translation replies.

Models wrap their JSON in markdown fences, prepend reasoning blocks, add
commentary, or return the wrong number of records. Recovery is an ordered
pipeline of small text strategies followed by a decode and a strictly
positional alignment against the source lines: echoed ids are never used.
"""

import json
import logging
import re
from typing import Any, Callable

from captions import CaptionItem
from translator_errors import ParseError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[\w-]*[ \t]*\r?\n?(.*?)\s*```", re.DOTALL)
_THINK_END_TAG = "</think>"


def strip_think_block(text: str) -> str:
    """Drop everything up to the last </think> when a reasoning block is present"""
    if "<think>" in text:
        end = text.rfind(_THINK_END_TAG)
        if end != -1:
            return text[end + len(_THINK_END_TAG):].strip()
    return text


def strip_code_fence(text: str) -> str:
    """Interior of the first fenced block, or the text unchanged"""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1)
    return text


def slice_json_array(text: str) -> str:
    """Span from the first '[' to the last ']'; empty when there is none"""
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end == -1 or end < start:
        return ""
    return text[start:end + 1]


TEXT_STRATEGIES: tuple[Callable[[str], str], ...] = (
    strip_think_block,
    strip_code_fence,
    slice_json_array,
)


def decode_records(text: str) -> list[Any]:
    if not text:
        raise ParseError("No JSON array found in model output")
    try:
        out = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON: {e}") from e
    if not isinstance(out, list):
        raise ParseError(f"Expected a JSON array, got {type(out).__name__}")
    return out


def extract_records_strict(raw_text: str) -> list[Any]:
    """Run the recovery pipeline; raises ParseError when nothing decodes"""
    text = raw_text or ""
    for strategy in TEXT_STRATEGIES:
        text = strategy(text)
    return decode_records(text)


def extract_records(raw_text: str) -> list[Any]:
    try:
        return extract_records_strict(raw_text)
    except ParseError as e:
        logger.warning("JSON parse error, falling back to original text: %s", e)
        return []


def _record_text(record: Any) -> str | None:
    if isinstance(record, dict):
        value = record.get("text")
    else:
        value = record
    if isinstance(value, str) and value.strip():
        return value
    return None


def has_usable_text(records: list[Any], line_count: int) -> bool:
    """True when at least one of the first line_count records carries a translation"""
    return any(_record_text(record) is not None for record in records[:line_count])


def align_by_position(records: list[Any], original_items: list[CaptionItem]) -> list[CaptionItem]:
    """Index i takes records[i].text when usable, else the original text"""
    if records and len(records) != len(original_items):
        logger.warning(
            "Model returned %d records for %d lines; aligning by position",
            len(records), len(original_items),
        )
    aligned = []
    for i, item in enumerate(original_items):
        translated = _record_text(records[i]) if i < len(records) else None
        aligned.append(item.with_text(translated) if translated is not None else item)
    return aligned


def parse(raw_text: str, original_items: list[CaptionItem]) -> list[CaptionItem]:
    """Translated copy of original_items; never raises on malformed output."""
    return align_by_position(extract_records(raw_text), original_items)
