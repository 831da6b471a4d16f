"""Streaming normalization: upstream chunks in, canonical events out."""

import asyncio
import logging
from typing import Any, AsyncIterable, AsyncIterator, List, Optional

from rosetta_gateway.correction import StopReasonCorrector
from rosetta_gateway.errors import GatewayError, MalformedUnit
from rosetta_gateway.events import CanonicalEvent, CanonicalEventEmitter
from rosetta_gateway.log import RequestLogger
from rosetta_gateway.reasons import Vocabulary
from rosetta_gateway.schemas import CorrectionResult, DetectionResult, TextSegment, ToolCallCandidate, Usage
from rosetta_gateway.tools import SlidingWindowScanner, TextFallback, ToolCallAccumulator, ToolCallExtractor
from rosetta_gateway.upstream import UpstreamDelta, parse_stream_chunk
from rosetta_gateway.validation import ValidationGate

logger = logging.getLogger(__name__)


class StreamNormalizer:
    """Owns every piece of per-request state for one streamed response.

    Chunks pass the gate, are parsed, scanned for tool calls written as text
    and emitted in their original order. Structured tool calls from the
    upstream are accumulated until text follows them or the stream ends, so
    text and tool blocks keep their upstream order. The corrected terminal
    reason comes last.
    """

    def __init__(
        self,
        scanner: SlidingWindowScanner,
        extractor: ToolCallExtractor,
        accumulator: ToolCallAccumulator,
        corrector: StopReasonCorrector,
        emitter: CanonicalEventEmitter,
        gate: ValidationGate,
        vocabulary: Vocabulary,
        request_logger: Optional[RequestLogger] = None,
    ) -> None:
        self.scanner = scanner
        self.extractor = extractor
        self.accumulator = accumulator
        self.corrector = corrector
        self.emitter = emitter
        self.gate = gate
        self.vocabulary = vocabulary
        self.log = request_logger or RequestLogger(logger)

        self.correction: Optional[CorrectionResult] = None
        self.done = False
        self._started = False
        self._closed = False
        self._declared_reason: Optional[str] = None
        self._usage = Usage()
        self._extracted: List[ToolCallCandidate] = []
        self._structured: List[ToolCallCandidate] = []

    async def process(self, chunks: AsyncIterable[Any]) -> AsyncIterator[CanonicalEvent]:
        """Normalize a whole stream. Failures end it with one error event."""
        try:
            async for raw in chunks:
                for event in self.feed(raw):
                    yield event
                if self.done:
                    break
            for event in self.close():
                yield event
        except asyncio.CancelledError:
            self.abort(MalformedUnit("Stream cancelled by the consumer"))
            raise
        except GatewayError as e:
            for event in self.abort(e):
                yield event
        except Exception as e:
            self.log.error(f"[STREAM] Unexpected error: {e}", exc_info=True)
            for event in self.abort(e):
                yield event

    def feed(self, raw: Any) -> List[CanonicalEvent]:
        if self._closed:
            raise MalformedUnit("Chunk received after the stream was closed")
        self.gate.validate_chunk(raw)
        delta = parse_stream_chunk(raw)

        events: List[CanonicalEvent] = []
        if not self._started:
            events.extend(self._start(delta))
        if delta.kind == "done":
            self.done = True
            return self._checked(events)

        if delta.text:
            # Text after a structured call closes that call.
            events.extend(self._flush_structured())
            events.extend(self._emit_detection(self.scanner.update(delta.text)))
        if delta.tool_calls:
            # Text held by the scanner came before these calls.
            events.extend(self._emit_detection(self.scanner.finish()))
            for call in delta.tool_calls:
                self.accumulator.add(**call.model_dump())
        if delta.finish_reason is not None:
            self._declared_reason = delta.finish_reason
        self._merge_usage(delta.usage)
        return self._checked(events)

    def close(self) -> List[CanonicalEvent]:
        """Final scan, structured call flush, terminal reason correction."""
        if self._closed:
            return []
        self.gate.finish_stream()

        events = self._emit_detection(self.scanner.finish())
        events.extend(self._flush_structured())

        detection = DetectionResult.from_candidates(self._extracted + self._structured)
        self.correction = self.corrector.correct(self._declared_reason, detection, self.vocabulary)
        events.extend(
            self.emitter.finish(self.correction.corrected_reason, self.correction.is_tool_use, self._usage)
        )
        self._closed = True
        self._release()
        return self._checked(events)

    def abort(self, error: Exception) -> List[CanonicalEvent]:
        """Replace the normal ending with one error event and drop all state."""
        self._closed = True
        events = self.emitter.abort(error)
        self._release()
        return events

    def _start(self, delta: UpstreamDelta) -> List[CanonicalEvent]:
        self._started = True
        if delta.message_id:
            self.emitter.message_id = delta.message_id
        if delta.model:
            self.emitter.model = delta.model
        self._merge_usage(delta.usage)
        return self.emitter.start(self._usage)

    def _emit_detection(self, detection: DetectionResult) -> List[CanonicalEvent]:
        events: List[CanonicalEvent] = []
        for item in detection.ordered():
            if isinstance(item, TextSegment):
                events.extend(self.emitter.text(item.text))
                continue
            result = self.extractor.extract(item)
            if isinstance(result, TextFallback):
                events.extend(self.emitter.text(result.text))
            else:
                self._extracted.append(item)
                events.extend(self.emitter.tool_use(result))
        return events

    def _flush_structured(self) -> List[CanonicalEvent]:
        events: List[CanonicalEvent] = []
        for block in self.accumulator.flush():
            self._structured.append(ToolCallCandidate.structured(block.name))
            events.extend(self.emitter.tool_use(block))
        return events

    def _merge_usage(self, usage: Optional[Usage]) -> None:
        if usage is None:
            return
        if usage.input_tokens:
            self._usage.input_tokens = usage.input_tokens
        if usage.output_tokens:
            self._usage.output_tokens = usage.output_tokens

    def _checked(self, events: List[CanonicalEvent]) -> List[CanonicalEvent]:
        for event in events:
            self.gate.validate_event(event)
        return events

    def _release(self) -> None:
        self.scanner.reset()
        self.accumulator.reset()
        self._extracted = []
        self._structured = []
