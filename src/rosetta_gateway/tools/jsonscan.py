"""String-aware bracket scanning for JSON-like payloads embedded in text."""

from typing import List, Optional

_OPENERS = {"{": "}", "[": "]"}
_CLOSERS = {"}", "]"}


def find_json_end(text: str, start: int) -> Optional[int]:
    """Return the offset just past the value opened at ``text[start]``.

    ``None`` means the value is still open when the text ends. Mismatched
    closers are tolerated: the scan only counts depth, so malformed payloads
    are handed to the repair pass instead of being split in odd places.
    """
    if start >= len(text) or text[start] not in _OPENERS:
        raise ValueError(f"No JSON value opens at offset {start}")

    depth = 0
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
        elif ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def first_unclosed_object(text: str, start: int = 0) -> Optional[int]:
    """Offset of the outermost ``{"`` object that is still open at the end of ``text``."""
    stack: List[int] = []
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
            # Quotes only delimit strings inside an object; prose quotes are ignored.
            if stack:
                in_string = True
        elif ch == "{":
            stack.append(i)
        elif ch == "}" and stack:
            stack.pop()

    for offset in stack:
        if text[offset + 1 :].lstrip().startswith('"') or not text[offset + 1 :].strip():
            return offset
    return None
