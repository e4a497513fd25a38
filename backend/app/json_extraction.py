"""
Recover a JSON object from free-form LLM output.

Research calls ask Gemini for ``application/json`` responses, but models
still wrap answers in prose or code fences, or emit almost-JSON. This module
turns such text into a Python object or ``None``.

Algorithm
---------
1. If a fenced block (```json ... ```) exists, scan its interior; otherwise
   scan the whole text. A fence without an object falls back to the whole
   text.
2. Find the outermost balanced ``{...}`` span with a scanner that tracks
   string literals and escape sequences, so braces inside strings do not
   change the depth. When that scan finds nothing (double-escaped output
   hides string boundaries), braces are counted blindly instead.
3. Try to parse, in order:
   - the span as-is,
   - the span with escaping artifacts normalised (``\\"`` -> ``"``,
     ``\\\\`` -> ``\\``, literal ``\\n``/``\\t`` -> space, whitespace runs
     collapsed),
   - the normalised span after a repair pass (trailing commas removed,
     bare object keys quoted).
4. Return the first successful parse, or ``None``.
"""

import json
import logging
import re
from typing import Any, Iterator, List, Optional

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_BARE_KEY_RE = re.compile(r"([{,]\s*)(\w+):")
_WHITESPACE_RE = re.compile(r"\s+")


def find_object_span(text: str, track_strings: bool = True) -> Optional[str]:
    """Return the first balanced ``{...}`` span in *text*, or ``None``.

    Quotes are only tracked once the opening brace has been seen, so prose
    such as ``Here's the "result": {...}`` does not confuse the scanner.
    With ``track_strings=False`` braces are counted blindly.
    """
    depth = 0
    start = -1
    in_string = False
    escaped = False

    for i, char in enumerate(text):
        if start == -1:
            if char == "{":
                start = i
                depth = 1
            continue

        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"' and track_strings:
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]

    return None


def normalize_escapes(span: str) -> str:
    """Undo double-escaping artifacts and collapse whitespace."""
    cleaned = (
        span.replace('\\"', '"')
        .replace("\\\\", "\\")
        .replace("\\n", " ")
        .replace("\\t", " ")
    )
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def repair_json(span: str) -> str:
    """Strip trailing commas and quote bare object keys."""
    repaired = _TRAILING_COMMA_RE.sub(r"\1", span)
    return _BARE_KEY_RE.sub(r'\1"\2":', repaired)


def _spans_in(source: str) -> List[str]:
    spans: List[str] = []
    for track_strings in (True, False):
        span = find_object_span(source, track_strings=track_strings)
        if span is not None and span not in spans:
            spans.append(span)
    return spans


def _candidate_spans(text: str) -> Iterator[str]:
    fence = _FENCE_RE.search(text)
    if fence:
        spans = _spans_in(fence.group(1))
        if spans:
            yield from spans
            return
    yield from _spans_in(text)


def extract_json(text: Optional[str]) -> Optional[Any]:
    """Parse the JSON object embedded in *text*; ``None`` when there is none."""
    if not text:
        return None

    for span in _candidate_spans(text):
        normalized = normalize_escapes(span)
        attempts = (
            ("raw", span),
            ("normalized", normalized),
            ("repaired", repair_json(normalized)),
        )
        for label, candidate in attempts:
            try:
                return json.loads(candidate)
            except json.JSONDecodeError as e:
                logger.debug(f"JSON parse attempt '{label}' failed: {e}")

    logger.warning(f"Could not extract JSON from model output: {text[:200]!r}")
    return None
