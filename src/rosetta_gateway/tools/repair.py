"""Repair common defects in JSON emitted by language models."""

import ast
import json
import logging
import re
from typing import Any, Callable, List, Tuple

from rosetta_gateway.errors import ExtractionFailure

logger = logging.getLogger(__name__)

_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t", "\b": "\\b", "\f": "\\f"}
_NATIVE_LITERALS = {
    "True": "true",
    "False": "false",
    "None": "null",
    "undefined": "null",
    "NaN": "null",
    "Infinity": "null",
}
_LITERAL_PATTERN = re.compile(r"\b(" + "|".join(_NATIVE_LITERALS) + r")\b")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")


def _split_strings(text: str) -> List[Tuple[bool, str]]:
    """Split text into (is_string, piece) runs; an unterminated string runs to the end."""
    pieces: List[Tuple[bool, str]] = []
    buf: List[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            buf.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                pieces.append((True, "".join(buf)))
                buf = []
                in_string = False
            continue
        if ch == '"':
            if buf:
                pieces.append((False, "".join(buf)))
            buf = [ch]
            in_string = True
        else:
            buf.append(ch)
    if buf:
        pieces.append((in_string, "".join(buf)))
    return pieces


def escape_control_characters(text: str) -> str:
    out: List[str] = []
    for is_string, piece in _split_strings(text):
        if not is_string:
            out.append(piece)
            continue
        for ch in piece:
            if ch in _CONTROL_ESCAPES:
                out.append(_CONTROL_ESCAPES[ch])
            elif ord(ch) < 0x20:
                out.append(f"\\u{ord(ch):04x}")
            else:
                out.append(ch)
    return "".join(out)


def fix_native_literals(text: str) -> str:
    out: List[str] = []
    for is_string, piece in _split_strings(text):
        if is_string:
            out.append(piece)
        else:
            piece = _LITERAL_PATTERN.sub(lambda m: _NATIVE_LITERALS[m.group(1)], piece)
            out.append(_TRAILING_COMMA.sub(r"\1", piece))
    return "".join(out)


def balance_brackets(text: str) -> str:
    stack: List[str] = []
    in_string = False
    escaped = False
    for ch in text:
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
        elif ch == "{":
            stack.append("}")
        elif ch == "[":
            stack.append("]")
        elif ch in "}]" and stack and stack[-1] == ch:
            stack.pop()

    repaired = text
    if in_string:
        if escaped:
            repaired = repaired[:-1]
        repaired += '"'
    if not stack:
        return repaired

    stripped = repaired.rstrip()
    if stripped.endswith(","):
        stripped = stripped[:-1]
    elif stripped.endswith(":"):
        stripped += " null"
    return stripped + "".join(reversed(stack))


REPAIR_STEPS: List[Tuple[str, Callable[[str], str]]] = [
    ("escape_control_characters", escape_control_characters),
    ("fix_native_literals", fix_native_literals),
    ("balance_brackets", balance_brackets),
]


def parse_json_with_repair(raw: str) -> Tuple[Any, List[str]]:
    """Parse ``raw`` as JSON, applying repair steps cumulatively until one parses.

    Returns the parsed value and the names of the repairs that were needed.
    Raises ``ExtractionFailure`` when every attempt fails.
    """
    text = raw.strip()
    if not text:
        raise ExtractionFailure("Empty payload")

    try:
        return json.loads(text), []
    except json.JSONDecodeError:
        pass

    applied: List[str] = []
    for name, step in REPAIR_STEPS:
        repaired = step(text)
        if repaired == text:
            continue
        text = repaired
        applied.append(name)
        try:
            value = json.loads(text)
        except json.JSONDecodeError:
            continue
        logger.debug(f"[REPAIR] Parsed payload after {applied}")
        return value, applied

    # Python dict parsing, for payloads written with single quotes
    for candidate in (raw.strip(), balance_brackets(raw.strip())):
        try:
            value = ast.literal_eval(candidate)
        except (ValueError, SyntaxError, MemoryError, RecursionError):
            continue
        if isinstance(value, (dict, list)):
            return value, applied + ["python_literal"]

    raise ExtractionFailure(f"Payload is not valid JSON after repairs {applied}", data={"raw": raw[:200]})
