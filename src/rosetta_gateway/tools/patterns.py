"""Pattern library for tool calls that models write as plain text."""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Optional, Pattern, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rosetta_gateway.schemas import ToolCallCandidate
from rosetta_gateway.tools.default_patterns import DEFAULT_EXCLUSIONS, DEFAULT_PATTERNS
from rosetta_gateway.tools.jsonscan import find_json_end

logger = logging.getLogger(__name__)

PatternKind = Literal["call", "tagged", "json", "partial"]

_NAME_IN_OBJECT = re.compile(r'"(?:name|function_name|tool_name)"\s*:\s*"([^"]+)"')
_DEFAULT_CLOSING = r"\s*\)"
DEFAULT_MAX_PARTIAL_CHARS = 256


def _compile(regex: str, flags: Sequence[str]) -> Pattern[str]:
    value = 0
    for flag in flags:
        try:
            value |= getattr(re, flag.upper())
        except AttributeError:
            raise ValueError(f"Unknown regex flag '{flag}'") from None
    return re.compile(regex, value)


class PatternSpec(BaseModel):
    """A recognizer: regex plus confidence and how its payload is measured."""

    model_config = ConfigDict(frozen=True)

    name: str
    regex: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    kind: PatternKind = "call"
    closing: Optional[str] = Field(None, description="Regex that must follow the payload (call and tagged kinds)")
    closing_token: Optional[str] = Field(
        None, description="Literal closing text; a partly arrived token keeps the call pending"
    )
    flags: Tuple[str, ...] = ()

    @field_validator("regex")
    @classmethod
    def validate_regex(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"Invalid pattern regex: {e}") from None
        return value

    def compiled(self) -> Pattern[str]:
        return _compile(self.regex, self.flags)

    def compiled_closing(self) -> Optional[Pattern[str]]:
        if self.kind == "call":
            return re.compile(self.closing or _DEFAULT_CLOSING)
        if self.kind == "tagged":
            if not self.closing:
                raise ValueError(f"Tagged pattern '{self.name}' needs a closing regex")
            return re.compile(self.closing)
        return None


class ExclusionSpec(BaseModel):
    """Text that looks like a tool call but is not one."""

    model_config = ConfigDict(frozen=True)

    name: str
    regex: str
    scope: Literal["span", "context"] = "span"
    max_confidence: float = Field(..., ge=0.0, le=1.0)
    flags: Tuple[str, ...] = ()


class _Compiled:
    __slots__ = ("spec", "regex", "closing")

    def __init__(self, spec: PatternSpec) -> None:
        self.spec = spec
        self.regex = spec.compiled()
        self.closing = spec.compiled_closing()


class PatternLibrary:
    """Immutable, ordered collection of tool call recognizers.

    Built once and shared by every request. Matching never mutates the
    library, so concurrent scanners can use the same instance.
    """

    def __init__(
        self,
        patterns: Iterable[PatternSpec],
        exclusions: Iterable[ExclusionSpec] = (),
        context_chars: int = 160,
        max_partial_chars: int = DEFAULT_MAX_PARTIAL_CHARS,
    ) -> None:
        self._patterns: Tuple[_Compiled, ...] = tuple(_Compiled(spec) for spec in patterns)
        self._exclusions: Tuple[Tuple[ExclusionSpec, Pattern[str]], ...] = tuple(
            (spec, _compile(spec.regex, spec.flags)) for spec in exclusions
        )
        self._context_chars = context_chars
        self._max_partial_chars = max_partial_chars
        if not self._patterns:
            raise ValueError("Pattern library needs at least one pattern")

    @classmethod
    def default(cls, context_chars: int = 160) -> "PatternLibrary":
        return cls.from_tables(DEFAULT_PATTERNS, DEFAULT_EXCLUSIONS, context_chars)

    @classmethod
    def from_tables(
        cls, patterns: List[Dict[str, Any]], exclusions: List[Dict[str, Any]], context_chars: int = 160
    ) -> "PatternLibrary":
        return cls(
            [PatternSpec.model_validate(p) for p in patterns],
            [ExclusionSpec.model_validate(e) for e in exclusions],
            context_chars,
        )

    @classmethod
    def from_file(cls, path: str, context_chars: int = 160) -> "PatternLibrary":
        """Load ``{"patterns": [...], "exclusions": [...]}`` from a JSON file."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        library = cls.from_tables(data.get("patterns", []), data.get("exclusions", []), context_chars)
        logger.info(f"[PATTERNS] Loaded {len(library.patterns)} patterns from {path}")
        return library

    @property
    def patterns(self) -> Tuple[PatternSpec, ...]:
        return tuple(compiled.spec for compiled in self._patterns)

    @property
    def exclusions(self) -> Tuple[ExclusionSpec, ...]:
        return tuple(spec for spec, _ in self._exclusions)

    @property
    def context_chars(self) -> int:
        return self._context_chars

    @property
    def max_partial_chars(self) -> int:
        return self._max_partial_chars

    def match(
        self, text: str, start: int = 0, end: Optional[int] = None, include_partial: bool = True
    ) -> List[ToolCallCandidate]:
        """Find candidates whose head lies in ``text[start:end]``.

        Payload extents are always measured against the whole of ``text`` so a
        window boundary never cuts a call in two. Offsets are relative to
        ``text``. Partial patterns only ever match within the last
        ``max_partial_chars`` characters of ``text``.
        """
        end = len(text) if end is None else end
        tail = max(start, len(text) - self._max_partial_chars)
        found: List[ToolCallCandidate] = []
        for compiled in self._patterns:
            spec = compiled.spec
            if spec.kind == "partial":
                if not include_partial or end < len(text):
                    continue
                m = compiled.regex.search(text, tail)
                if m:
                    found.append(
                        ToolCallCandidate(
                            start=m.start(),
                            end=len(text),
                            text=text[m.start() :],
                            confidence=spec.confidence,
                            method=spec.name,
                            payload_kind="none",
                        )
                    )
                continue
            for m in compiled.regex.finditer(text, start, end):
                candidate = self._measure(compiled, m, text)
                if candidate is not None and not self._is_excluded(candidate, text):
                    found.append(candidate)
        return found

    def confidence(self, text: str) -> float:
        return max((c.confidence for c in self.match(text)), default=0.0)

    def _measure(self, compiled: _Compiled, m: "re.Match[str]", text: str) -> Optional[ToolCallCandidate]:
        spec = compiled.spec
        name: Optional[str] = None
        if spec.kind == "json":
            payload_start = m.start()
        else:
            payload_start = m.end()
            while payload_start < len(text) and text[payload_start].isspace():
                payload_start += 1
            if spec.kind == "call":
                name = m.groupdict().get("tool")

        def build(end: int, raw: str, truncated: bool) -> ToolCallCandidate:
            tool_name = name
            if tool_name is None:
                found = _NAME_IN_OBJECT.search(raw)
                tool_name = found.group(1) if found else None
            return ToolCallCandidate(
                start=m.start(),
                end=end,
                text=text[m.start() : end],
                name=tool_name,
                raw_arguments=raw,
                confidence=spec.confidence,
                method=spec.name,
                payload_kind="arguments" if spec.kind == "call" else "tool_object",
                truncated=truncated,
            )

        if payload_start >= len(text):
            return build(len(text), "", truncated=True)

        if text[payload_start] != "{":
            # Empty argument list, e.g. ``Tool call: list_files()``
            if compiled.closing is not None and spec.kind == "call":
                close = compiled.closing.match(text, m.end())
                if close:
                    return build(close.end(), "{}", truncated=False)
            return None

        payload_end = find_json_end(text, payload_start)
        if payload_end is None:
            return build(len(text), text[payload_start:], truncated=True)
        raw = text[payload_start:payload_end]
        if compiled.closing is None:
            return build(payload_end, raw, truncated=False)

        close = compiled.closing.match(text, payload_end)
        if close:
            return build(close.end(), raw, truncated=False)
        rest = text[payload_end:].lstrip()
        if not rest or (spec.closing_token and spec.closing_token.startswith(rest)):
            # The closing token has not arrived yet, or only part of it has
            return build(len(text), raw, truncated=True)
        return None

    def _is_excluded(self, candidate: ToolCallCandidate, text: str) -> bool:
        for spec, regex in self._exclusions:
            if spec.max_confidence < candidate.confidence:
                continue
            if spec.scope == "span":
                scope_text = candidate.text
            else:
                scope_text = text[max(0, candidate.start - self._context_chars) : candidate.end]
            if regex.search(scope_text):
                logger.debug(f"[PATTERNS] {candidate.method} at {candidate.start} excluded by {spec.name}")
                return True
        return False


def resolve_overlaps(candidates: Iterable[ToolCallCandidate]) -> List[ToolCallCandidate]:
    """Keep the best non-overlapping candidates, ordered by start.

    Higher confidence wins; ties go to the earlier start, then the longer span.
    """
    ranked = sorted(candidates, key=lambda c: (-c.confidence, c.start, -(c.end - c.start)))
    kept: List[ToolCallCandidate] = []
    for candidate in ranked:
        if any(candidate.overlaps(other.start, other.end) for other in kept):
            continue
        kept.append(candidate)
    return sorted(kept, key=lambda c: c.start)


def load_library(patterns_file: Optional[str] = None, context_chars: int = 160) -> PatternLibrary:
    if patterns_file:
        return PatternLibrary.from_file(patterns_file, context_chars)
    return PatternLibrary.default(context_chars)
