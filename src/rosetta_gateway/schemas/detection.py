"""Detection, scanning and correction records."""

from typing import Iterator, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field

PayloadKind = Literal["arguments", "tool_object", "none"]


class ToolCallCandidate(BaseModel):
    """One pattern match that may be a tool call embedded in text."""

    start: int = Field(..., ge=0, description="Absolute start offset of the matched span")
    end: int = Field(..., ge=0, description="Absolute end offset (exclusive)")
    text: str = Field(..., description="Text covered by the span")
    name: Optional[str] = Field(None, description="Tool name when the pattern captures one")
    raw_arguments: str = Field("", description="Captured payload before parsing")
    confidence: float = Field(..., ge=0.0, le=1.0)
    method: str = Field(..., description="Name of the pattern that produced the match")
    payload_kind: PayloadKind = "none"
    truncated: bool = Field(False, description="Payload was still open at the end of the text")

    @classmethod
    def structured(cls, name: Optional[str]) -> "ToolCallCandidate":
        """A tool call the upstream sent as a structured block, not as text."""
        return cls(start=0, end=0, text="", name=name, confidence=1.0, method="structured", payload_kind="tool_object")

    @property
    def span(self) -> Tuple[int, int]:
        return (self.start, self.end)

    @property
    def is_partial(self) -> bool:
        return self.payload_kind == "none"

    def overlaps(self, start: int, end: int) -> bool:
        return self.start < end and start < self.end

    def shifted(self, offset: int) -> "ToolCallCandidate":
        return self.model_copy(update={"start": self.start + offset, "end": self.end + offset})


class TextSegment(BaseModel):
    start: int = Field(..., ge=0)
    text: str

    @property
    def end(self) -> int:
        return self.start + len(self.text)


class DetectionResult(BaseModel):
    has_tool_calls: bool = False
    candidates: List[ToolCallCandidate] = Field(default_factory=list)
    residual_segments: List[TextSegment] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    pending: bool = Field(False, description="Text is held back because a tool call may still be forming")

    @property
    def residual_text_segments(self) -> List[str]:
        return [segment.text for segment in self.residual_segments]

    def ordered(self) -> Iterator[Union[TextSegment, ToolCallCandidate]]:
        """Yield residual text and candidates in original byte order."""
        items: List[Union[TextSegment, ToolCallCandidate]] = [*self.residual_segments, *self.candidates]
        yield from sorted(items, key=lambda item: item.start)

    @classmethod
    def from_candidates(
        cls, candidates: List[ToolCallCandidate], segments: Optional[List[TextSegment]] = None, pending: bool = False
    ) -> "DetectionResult":
        return cls(
            has_tool_calls=bool(candidates),
            candidates=candidates,
            residual_segments=segments or [],
            confidence=max((c.confidence for c in candidates), default=0.0),
            pending=pending,
        )


class SlidingWindowState(BaseModel):
    """Mutable scanner state owned by exactly one in-flight request."""

    buffer: str = ""
    buffer_offset: int = Field(0, ge=0, description="Absolute offset of buffer[0]")
    window_size: int = Field(..., ge=1)
    processed_offset: int = Field(0, ge=0, description="Text before this offset is finalized")
    detection_count: int = Field(0, ge=0)
    processed_ranges: List[Tuple[int, int]] = Field(default_factory=list)

    @property
    def total_received(self) -> int:
        return self.buffer_offset + len(self.buffer)


class CorrectionResult(BaseModel):
    original_reason: str
    corrected_reason: str
    was_corrected: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    is_tool_use: bool = Field(False, description="Corrected reason is the tool-use state, whatever its token")


__all__ = [
    "PayloadKind",
    "ToolCallCandidate",
    "TextSegment",
    "DetectionResult",
    "SlidingWindowState",
    "CorrectionResult",
]
