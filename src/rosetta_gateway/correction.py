"""Correct terminal reasons that contradict the tool calls found in the output."""

import logging
from typing import Iterable, Optional

from rosetta_gateway.log import RequestLogger
from rosetta_gateway.reasons import DEFAULT_SENTINELS, TerminalReason, Vocabulary, normalize_reason
from rosetta_gateway.schemas import CorrectionResult, DetectionResult

logger = logging.getLogger(__name__)


class StopReasonCorrector:
    """Force the tool-use terminal state when the output clearly carries tool calls.

    Models often emit a tool call as text and then finish with ``stop``.
    Downstream clients only run tools when the terminal reason says so.
    """

    def __init__(
        self,
        force_threshold: float = 0.7,
        stop_threshold: float = 0.3,
        sentinel_values: Iterable[str] = DEFAULT_SENTINELS,
        request_logger: Optional[RequestLogger] = None,
    ) -> None:
        if stop_threshold > force_threshold:
            raise ValueError("stop_threshold must not exceed force_threshold")
        self.force_threshold = force_threshold
        self.stop_threshold = stop_threshold
        self.sentinel_values = tuple(sentinel_values)
        self.log = request_logger or RequestLogger(logger)

    def decide(self, declared: TerminalReason, confidence: float) -> TerminalReason:
        if declared is TerminalReason.TOOL_USE:
            # A tool-use ending needs a tool call behind it.
            return declared if confidence >= self.stop_threshold else TerminalReason.END_TURN
        if confidence >= self.force_threshold:
            return TerminalReason.TOOL_USE
        if confidence >= self.stop_threshold and declared.is_stop_like:
            return TerminalReason.TOOL_USE
        return declared

    def correct(
        self, declared_reason: Optional[str], detection: DetectionResult, vocabulary: Vocabulary
    ) -> CorrectionResult:
        declared = normalize_reason(declared_reason, self.sentinel_values)
        confidence = max((c.confidence for c in detection.candidates if not c.is_partial), default=0.0)
        corrected = self.decide(declared, confidence)

        result = CorrectionResult(
            original_reason=declared.value if isinstance(declared_reason, TerminalReason) else str(declared_reason),
            corrected_reason=vocabulary.token(corrected),
            was_corrected=corrected is not declared,
            confidence=confidence,
            is_tool_use=corrected is TerminalReason.TOOL_USE,
        )
        if result.was_corrected:
            self.log.info(
                f"[CORRECTOR] Terminal reason {result.original_reason} -> {result.corrected_reason} "
                f"(confidence {confidence:.2f})",
                data={
                    "original": result.original_reason,
                    "corrected": result.corrected_reason,
                    "confidence": confidence,
                    "vocabulary": vocabulary.name,
                },
            )
        return result
