"""Build per-request pipelines around the one shared pattern library."""

import logging
import uuid
from typing import Optional

from rosetta_gateway.buffered import BufferedResponseFixer
from rosetta_gateway.correction import StopReasonCorrector
from rosetta_gateway.events import CanonicalEventEmitter
from rosetta_gateway.log import RequestLogger, get_request_logger
from rosetta_gateway.pipeline.buffered import BufferedNormalizer
from rosetta_gateway.pipeline.stream import StreamNormalizer
from rosetta_gateway.reasons import get_vocabulary
from rosetta_gateway.recovery import MaxTokensRecovery, RecoveryAttempts
from rosetta_gateway.settings import Settings
from rosetta_gateway.tools import PatternLibrary, SlidingWindowScanner, ToolCallAccumulator, ToolCallExtractor, load_library
from rosetta_gateway.validation import ValidationGate

logger = logging.getLogger(__name__)


class NormalizerFactory:
    """Creates fresh per-request components; only the pattern library is shared."""

    def __init__(self, settings: Settings, library: Optional[PatternLibrary] = None) -> None:
        self.settings = settings
        self.library = library or load_library(settings.patterns_file, settings.context_chars)
        self.vocabulary = get_vocabulary(settings.target_dialect)
        logger.info(
            f"[FACTORY] {len(self.library.patterns)} patterns, {len(self.library.exclusions)} exclusions, "
            f"target vocabulary {self.vocabulary.name}"
        )

    def request_logger(self, request_id: Optional[str] = None) -> RequestLogger:
        return get_request_logger("rosetta_gateway.request", request_id or f"req_{uuid.uuid4().hex[:12]}")

    def scanner(self, log: RequestLogger) -> SlidingWindowScanner:
        s = self.settings
        return SlidingWindowScanner(self.library, s.window_size, s.context_chars, s.max_pending_chars, log)

    def extractor(self, log: RequestLogger) -> ToolCallExtractor:
        return ToolCallExtractor(self.settings.extraction_min_confidence, self.settings.tool_id_prefix, log)

    def corrector(self, log: RequestLogger) -> StopReasonCorrector:
        s = self.settings
        return StopReasonCorrector(s.force_tool_use_confidence, s.stop_tool_use_confidence, s.sentinel_values, log)

    def gate(self, log: RequestLogger) -> ValidationGate:
        return ValidationGate(self.settings.sentinel_values, log)

    def fixer(self, log: RequestLogger) -> BufferedResponseFixer:
        s = self.settings
        return BufferedResponseFixer(
            self.library,
            self.extractor(log),
            discard_narrative_text=s.discard_narrative_text,
            window_size=s.window_size,
            context_chars=s.context_chars,
            max_pending_chars=s.max_pending_chars,
            id_prefix=s.tool_id_prefix,
            request_logger=log,
        )

    def recovery(self, log: Optional[RequestLogger] = None) -> MaxTokensRecovery:
        return MaxTokensRecovery.from_settings(self.settings, log or self.request_logger())

    def attempts(self) -> RecoveryAttempts:
        return RecoveryAttempts(self.settings.max_recovery_attempts)

    def stream(self, request_id: Optional[str] = None, model: Optional[str] = None) -> StreamNormalizer:
        log = self.request_logger(request_id)
        return StreamNormalizer(
            scanner=self.scanner(log),
            extractor=self.extractor(log),
            accumulator=ToolCallAccumulator(self.settings.tool_id_prefix, log),
            corrector=self.corrector(log),
            emitter=CanonicalEventEmitter(model=model, request_logger=log),
            gate=self.gate(log),
            vocabulary=self.vocabulary,
            request_logger=log,
        )

    def buffered(self, request_id: Optional[str] = None) -> BufferedNormalizer:
        log = self.request_logger(request_id)
        return BufferedNormalizer(self.fixer(log), self.corrector(log), self.gate(log), self.vocabulary, log)
