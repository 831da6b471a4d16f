"""Sliding window detection of tool calls spread across streaming chunks."""

import logging
from typing import List, Optional

from rosetta_gateway.log import RequestLogger
from rosetta_gateway.schemas import DetectionResult, SlidingWindowState, TextSegment, ToolCallCandidate
from rosetta_gateway.tools.jsonscan import first_unclosed_object
from rosetta_gateway.tools.patterns import PatternLibrary, resolve_overlaps

logger = logging.getLogger(__name__)


class SlidingWindowScanner:
    """Incremental tool call detector for one stream.

    Each ``update`` returns only what became final with that chunk: tool call
    candidates that are complete and text that can no longer be part of a call.
    Anything that might still turn into a call (an open argument object, a
    ``Tool call:`` prefix, a trailing identifier) is held back until more text
    arrives or ``finish`` is called. The concatenation of all results is the
    same no matter where the chunk boundaries fall.
    """

    def __init__(
        self,
        library: PatternLibrary,
        window_size: int = 2048,
        context_chars: int = 160,
        max_pending_chars: int = 64 * 1024,
        request_logger: Optional[RequestLogger] = None,
    ) -> None:
        self.library = library
        self.context_chars = context_chars
        self.max_pending_chars = max_pending_chars
        self.log = request_logger or RequestLogger(logger)
        self.state = SlidingWindowState(window_size=window_size)
        self._candidates: List[ToolCallCandidate] = []
        self._segments: List[TextSegment] = []

    @property
    def step(self) -> int:
        return max(1, self.state.window_size // 4)

    def update(self, chunk: str) -> DetectionResult:
        if not chunk:
            return DetectionResult()
        previous_end = len(self.state.buffer)
        self.state.buffer += chunk
        result = self._scan(final=False, rescan_from=previous_end)
        self._trim()
        return result

    def finish(self) -> DetectionResult:
        """Final scan: commit everything still held, then release the buffer."""
        result = self._scan(final=True, rescan_from=0)
        self.state = SlidingWindowState(
            window_size=self.state.window_size,
            buffer_offset=self.state.total_received,
            processed_offset=self.state.total_received,
            detection_count=self.state.detection_count,
        )
        return result

    def total(self) -> DetectionResult:
        """Everything committed so far, with adjacent residual text merged."""
        merged: List[TextSegment] = []
        for segment in sorted(self._segments, key=lambda s: s.start):
            if merged and merged[-1].end == segment.start:
                merged[-1] = TextSegment(start=merged[-1].start, text=merged[-1].text + segment.text)
            else:
                merged.append(segment)
        return DetectionResult.from_candidates(
            sorted(self._candidates, key=lambda c: c.start), merged, pending=bool(self.state.buffer)
        )

    def reset(self) -> None:
        self.state = SlidingWindowState(window_size=self.state.window_size)
        self._candidates = []
        self._segments = []

    def _collect(self, text: str, start: int, rescan_from: int) -> List[ToolCallCandidate]:
        found: List[ToolCallCandidate] = []
        window = self.state.window_size
        # Windows cover the newly appended text plus one window of lookback.
        position = max(start, rescan_from - window)
        while position < len(text):
            found.extend(self.library.match(text, position, min(position + window, len(text)), include_partial=False))
            position += self.step
        # Safety pass over the whole unfinalized buffer.
        found.extend(self.library.match(text, start))
        return found

    def _scan(self, final: bool, rescan_from: int) -> DetectionResult:
        state = self.state
        text = state.buffer
        base = state.buffer_offset
        start = state.processed_offset - base
        if start >= len(text):
            return DetectionResult()

        found = self._collect(text, start, rescan_from)
        partials = [c for c in found if c.is_partial]
        complete = resolve_overlaps(
            c
            for c in found
            if not c.is_partial
            and c.start >= start
            and not any(c.overlaps(s - base, e - base) for s, e in state.processed_ranges)
        )

        boundary = len(text)
        if not final:
            for candidate in complete:
                if candidate.truncated:
                    boundary = min(boundary, candidate.start)

            def inside_candidate(offset: int) -> bool:
                return any(c.start <= offset < c.end for c in complete if not c.truncated)

            for partial in partials:
                if not inside_candidate(partial.start):
                    boundary = min(boundary, partial.start)
            unclosed = first_unclosed_object(text, start)
            if unclosed is not None and not inside_candidate(unclosed):
                boundary = min(boundary, unclosed)

            if len(text) - boundary > self.max_pending_chars:
                self.log.warning(
                    f"[SCANNER] Pending text exceeded {self.max_pending_chars} chars, releasing it as plain text"
                )
                boundary = len(text)
                complete = [c for c in complete if not c.truncated]

        committed = [c for c in complete if c.end <= boundary]
        segments: List[TextSegment] = []
        cursor = start
        for candidate in committed:
            if candidate.start > cursor:
                segments.append(TextSegment(start=base + cursor, text=text[cursor : candidate.start]))
            cursor = candidate.end
        if boundary > cursor:
            segments.append(TextSegment(start=base + cursor, text=text[cursor:boundary]))

        committed = [c.shifted(base) for c in committed]
        state.processed_ranges.extend(c.span for c in committed)
        state.processed_offset = base + max(boundary, cursor)
        state.detection_count += len(committed)
        self._candidates.extend(committed)
        self._segments.extend(segments)

        for candidate in committed:
            self.log.debug(
                f"[SCANNER] {candidate.method} committed at {candidate.start}-{candidate.end}",
                data={"method": candidate.method, "confidence": candidate.confidence},
            )
        return DetectionResult.from_candidates(committed, segments, pending=state.processed_offset < state.total_received)

    def _trim(self) -> None:
        """Keep the last window of text, plus any unfinalized text and its context."""
        state = self.state
        unfinalized = state.processed_offset - state.buffer_offset
        keep_from = min(max(0, len(state.buffer) - state.window_size), max(0, unfinalized - self.context_chars))
        if keep_from <= 0:
            return
        state.buffer = state.buffer[keep_from:]
        state.buffer_offset += keep_from
        state.processed_ranges = [(s, e) for s, e in state.processed_ranges if e > state.buffer_offset]
