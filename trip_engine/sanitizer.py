"""Repair JSON coming back from a language model.

Models wrap JSON in markdown fences, add chatty prose around it, and get cut
off at the token limit.  ``sanitize`` undoes as much of that as it can
without ever raising; ``parse_json`` is the strict boundary that turns the
result into Python data or a ``JSONParseError``.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .errors import JSONParseError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_FENCE_OPEN = re.compile(r"^\s*```[A-Za-z0-9_-]*[ \t]*\r?\n?")
_FENCE_CLOSE = re.compile(r"\r?\n?```\s*$")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_CLOSERS = {"{": "}", "[": "]"}
# Upper bounds keep repair linear-ish on long garbage input.
_MAX_SCAN_STARTS = 25
_MAX_COMMA_CUTS = 200
_MAX_REPAIR_STARTS = 5


def _parses(text: str) -> bool:
    if not text:
        return False
    try:
        json.loads(text)
    except (ValueError, RecursionError):
        return False
    return True


def _strip_fences(text: str) -> str:
    text = _FENCE_OPEN.sub("", text, count=1)
    text = _FENCE_CLOSE.sub("", text, count=1)
    return text.strip()


def _first_structure(text: str) -> int:
    positions = [p for p in (text.find("{"), text.find("[")) if p != -1]
    return min(positions) if positions else -1


def _balanced_end(text: str, start: int) -> Optional[int]:
    """Index just past the value opened at ``start``.

    -1 when a closer does not match, None when the text ends first.
    """
    stack: List[str] = []
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in "}]":
            if not stack or stack[-1] != ch:
                return -1
            stack.pop()
            if not stack:
                return i + 1
    return None


def _extract_balanced(text: str) -> Tuple[Optional[str], List[int]]:
    """Longest balanced value that parses, plus the starts that never close."""
    best: Optional[str] = None
    covered = -1
    unclosed: List[int] = []
    attempts = 0
    for start, ch in enumerate(text):
        if ch not in _CLOSERS or start < covered:
            continue
        attempts += 1
        if attempts > _MAX_SCAN_STARTS:
            break
        end = _balanced_end(text, start)
        if end is None:
            unclosed.append(start)
            continue
        if end == -1:
            continue
        candidate = text[start:end]
        if _parses(candidate):
            if best is None or len(candidate) > len(best):
                best = candidate
            covered = end
    return best, unclosed


def _scan_truncated(text: str) -> Tuple[List[Tuple[int, Tuple[str, ...]]], Tuple[str, ...], bool]:
    """Comma positions with the open-closer stack at each, plus the final state."""
    commas: List[Tuple[int, Tuple[str, ...]]] = []
    stack: List[str] = []
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in "}]":
            if stack and stack[-1] == ch:
                stack.pop()
        elif ch == ",":
            commas.append((i, tuple(stack)))
    return commas, tuple(stack), in_string


def _close(body: str, stack: Tuple[str, ...]) -> str:
    return body.rstrip().rstrip(",:") + "".join(reversed(stack))


def _repair_from(body: str) -> Optional[str]:
    commas, final_stack, in_string = _scan_truncated(body)

    candidates: List[str] = []
    for pos, stack in reversed(commas[-_MAX_COMMA_CUTS:]):
        if stack:
            candidates.append(_close(body[:pos], stack))
    tail = body + '"' if in_string else body
    candidates.append(_close(tail, final_stack))

    for candidate in candidates:
        if _parses(candidate):
            return candidate
        fixed = _TRAILING_COMMA.sub(r"\1", candidate)
        if fixed != candidate and _parses(fixed):
            return fixed
    return None


def _repair_truncated(text: str, starts: List[int]) -> Optional[str]:
    """Close the first truncated value that can be closed, widest span first."""
    for start in sorted(starts)[:_MAX_REPAIR_STARTS]:
        repaired = _repair_from(text[start:].rstrip())
        if repaired is not None:
            return repaired
    return None


def sanitize(text: str) -> str:
    """Best-effort cleanup of model output into parseable JSON text.

    Well-formed JSON is returned unchanged.  Never raises; when nothing
    parses the fence-stripped text is returned and the caller's parse fails.
    """
    if not isinstance(text, str):
        text = "" if text is None else str(text)
    if _parses(text):
        return text

    cleaned = _strip_fences(text)
    if _parses(cleaned):
        return cleaned

    extracted, starts = _extract_balanced(cleaned)
    if not starts and extracted is None:
        first = _first_structure(cleaned)
        starts = [first] if first != -1 else []
    repaired = _repair_truncated(cleaned, starts) if starts else None

    if extracted is not None and (repaired is None or len(extracted) >= len(repaired)):
        return extracted
    if repaired is not None:
        logger.warning(json.dumps({
            "component": "sanitizer",
            "fn": "repair_truncated",
            "original_length": len(text),
            "repaired_length": len(repaired),
        }))
        return repaired
    return cleaned


def parse_json(text: str, *, context: str = "response") -> Any:
    cleaned = sanitize(text)
    try:
        return json.loads(cleaned)
    except (ValueError, RecursionError) as e:
        excerpt = cleaned[:200]
        logger.error(json.dumps({
            "component": "sanitizer",
            "fn": "parse_json",
            "context": context,
            "error": str(e),
            "head": excerpt,
            "tail": cleaned[-200:],
        }))
        raise JSONParseError(f"{context}: could not parse JSON ({e})", excerpt=excerpt) from e


def validate_payload(data: Any, model: Type[T], *, context: str = "response") -> T:
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"{context}: {e.error_count()} schema error(s): {e.errors()[0]['msg']}") from e
