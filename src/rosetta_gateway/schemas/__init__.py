from rosetta_gateway.schemas.content import (
    ContentBlock,
    FixedEnvelope,
    ResponseEnvelope,
    TextBlock,
    ToolUseBlock,
    Usage,
)
from rosetta_gateway.schemas.detection import (
    CorrectionResult,
    DetectionResult,
    SlidingWindowState,
    TextSegment,
    ToolCallCandidate,
)
from rosetta_gateway.schemas.requests import (
    ChatRequest,
    TruncationPlan,
    TruncationResult,
    TruncationStep,
    Unrecoverable,
)

__all__ = [
    "ContentBlock",
    "TextBlock",
    "ToolUseBlock",
    "Usage",
    "ResponseEnvelope",
    "FixedEnvelope",
    "ToolCallCandidate",
    "TextSegment",
    "DetectionResult",
    "SlidingWindowState",
    "CorrectionResult",
    "ChatRequest",
    "TruncationStep",
    "TruncationPlan",
    "TruncationResult",
    "Unrecoverable",
]
