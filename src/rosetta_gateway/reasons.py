"""Terminal reasons and the per-dialect vocabularies they map to."""

from enum import Enum
from typing import Dict, Iterable, Optional

from rosetta_gateway.errors import MalformedUnit, SilentFailureDetected

DEFAULT_SENTINELS = ("unknown", "default", "null", "none", "undefined")


class TerminalReason(str, Enum):
    END_TURN = "end_turn"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"
    TOOL_USE = "tool_use"
    CONTENT_FILTER = "content_filter"

    @property
    def is_stop_like(self) -> bool:
        return self in (TerminalReason.END_TURN, TerminalReason.STOP_SEQUENCE)


# Every upstream spelling the gateway accepts. Lookups are case-insensitive.
_KNOWN_REASONS: Dict[str, TerminalReason] = {
    "stop": TerminalReason.END_TURN,
    "end_turn": TerminalReason.END_TURN,
    "eos": TerminalReason.END_TURN,
    "finish_reason_unspecified": TerminalReason.END_TURN,
    "length": TerminalReason.MAX_TOKENS,
    "max_tokens": TerminalReason.MAX_TOKENS,
    "model_context_window_exceeded": TerminalReason.MAX_TOKENS,
    "tool_calls": TerminalReason.TOOL_USE,
    "function_call": TerminalReason.TOOL_USE,
    "tool_use": TerminalReason.TOOL_USE,
    "stop_sequence": TerminalReason.STOP_SEQUENCE,
    "content_filter": TerminalReason.CONTENT_FILTER,
    "safety": TerminalReason.CONTENT_FILTER,
    "recitation": TerminalReason.CONTENT_FILTER,
    "refusal": TerminalReason.CONTENT_FILTER,
}


class Vocabulary:
    """Total mapping from abstract terminal reasons to one dialect's tokens."""

    def __init__(self, name: str, tokens: Dict[TerminalReason, str]) -> None:
        missing = [reason.value for reason in TerminalReason if reason not in tokens]
        if missing:
            raise ValueError(f"Vocabulary '{name}' is missing tokens for: {', '.join(missing)}")
        self.name = name
        self._tokens = dict(tokens)

    def token(self, reason: TerminalReason) -> str:
        return self._tokens[reason]

    @property
    def tool_use(self) -> str:
        return self._tokens[TerminalReason.TOOL_USE]

    def __repr__(self) -> str:
        return f"Vocabulary({self.name!r})"


VOCABULARIES: Dict[str, Vocabulary] = {
    "anthropic": Vocabulary(
        "anthropic",
        {
            TerminalReason.END_TURN: "end_turn",
            TerminalReason.MAX_TOKENS: "max_tokens",
            TerminalReason.STOP_SEQUENCE: "stop_sequence",
            TerminalReason.TOOL_USE: "tool_use",
            TerminalReason.CONTENT_FILTER: "stop_sequence",
        },
    ),
    "openai": Vocabulary(
        "openai",
        {
            TerminalReason.END_TURN: "stop",
            TerminalReason.MAX_TOKENS: "length",
            TerminalReason.STOP_SEQUENCE: "stop",
            TerminalReason.TOOL_USE: "tool_calls",
            TerminalReason.CONTENT_FILTER: "content_filter",
        },
    ),
    "gemini": Vocabulary(
        "gemini",
        {
            TerminalReason.END_TURN: "STOP",
            TerminalReason.MAX_TOKENS: "MAX_TOKENS",
            TerminalReason.STOP_SEQUENCE: "STOP",
            TerminalReason.TOOL_USE: "STOP",
            TerminalReason.CONTENT_FILTER: "SAFETY",
        },
    ),
}


def get_vocabulary(name: str) -> Vocabulary:
    try:
        return VOCABULARIES[name.lower()]
    except KeyError:
        raise MalformedUnit(
            f"Unknown target vocabulary '{name}'. Available: {', '.join(sorted(VOCABULARIES))}"
        ) from None


def normalize_reason(raw: Optional[str], sentinels: Iterable[str] = DEFAULT_SENTINELS) -> TerminalReason:
    """Map an upstream terminal reason to a ``TerminalReason``.

    Placeholder values raise ``SilentFailureDetected``; unrecognised values
    raise ``MalformedUnit``. There is no fallback guess.
    """
    if raw is None:
        raise SilentFailureDetected("Terminal reason is missing")
    if isinstance(raw, TerminalReason):
        return raw
    if not isinstance(raw, str):
        raise MalformedUnit(f"Terminal reason must be a string, got {type(raw).__name__}")

    key = raw.strip().lower()
    if not key or key in {s.lower() for s in sentinels}:
        raise SilentFailureDetected(f"Upstream returned placeholder terminal reason '{raw}'")
    try:
        return _KNOWN_REASONS[key]
    except KeyError:
        raise MalformedUnit(
            f"Unknown terminal reason '{raw}'. Known reasons: {', '.join(sorted(_KNOWN_REASONS))}"
        ) from None
