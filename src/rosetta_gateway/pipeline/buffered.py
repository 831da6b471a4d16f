"""Buffered normalization: one upstream response in, one envelope out."""

import logging
from typing import Any, Dict, Optional

from rosetta_gateway.buffered import BufferedResponseFixer
from rosetta_gateway.correction import StopReasonCorrector
from rosetta_gateway.errors import GatewayError
from rosetta_gateway.log import RequestLogger
from rosetta_gateway.reasons import Vocabulary
from rosetta_gateway.schemas import CorrectionResult, DetectionResult, FixedEnvelope, ResponseEnvelope
from rosetta_gateway.upstream import parse_response
from rosetta_gateway.validation import ValidationGate

logger = logging.getLogger(__name__)


class BufferedNormalizer:
    def __init__(
        self,
        fixer: BufferedResponseFixer,
        corrector: StopReasonCorrector,
        gate: ValidationGate,
        vocabulary: Vocabulary,
        request_logger: Optional[RequestLogger] = None,
    ) -> None:
        self.fixer = fixer
        self.corrector = corrector
        self.gate = gate
        self.vocabulary = vocabulary
        self.log = request_logger or RequestLogger(logger)
        self.fixed: Optional[FixedEnvelope] = None
        self.correction: Optional[CorrectionResult] = None

    def normalize(self, raw: Any) -> ResponseEnvelope:
        """Gate, parse, fix, correct the terminal reason, gate again."""
        self.gate.validate_chunk(raw)
        parsed = parse_response(raw)
        self.fixed = self.fixer.fix(parsed.envelope_data())

        detection = DetectionResult.from_candidates(self.fixed.detected)
        self.correction = self.corrector.correct(parsed.finish_reason, detection, self.vocabulary)
        envelope = self.fixed.envelope.model_copy(update={"terminal_reason": self.correction.corrected_reason})
        return self.gate.validate_envelope(envelope)

    def normalize_or_error(self, raw: Any) -> Dict[str, Any]:
        """Like ``normalize`` but fatal errors become an error envelope."""
        try:
            return self.normalize(raw).model_dump()
        except GatewayError as e:
            if not e.fatal:
                raise
            self.log.error(f"[BUFFERED] {e.error_type}: {e.message}", data=e.to_dict()["error"])
            return e.to_dict()
