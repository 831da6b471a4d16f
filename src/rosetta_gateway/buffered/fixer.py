"""Repair a fully buffered response so it is structurally valid."""

import logging
from typing import Any, List, Mapping, Optional, Set, Union

from rosetta_gateway.errors import ExtractionFailure, MalformedUnit
from rosetta_gateway.log import RequestLogger
from rosetta_gateway.schemas import (
    ContentBlock,
    FixedEnvelope,
    ResponseEnvelope,
    TextBlock,
    TextSegment,
    ToolCallCandidate,
    ToolUseBlock,
)
from rosetta_gateway.tools.extractor import TextFallback, ToolCallExtractor, coerce_arguments, generate_tool_id
from rosetta_gateway.tools.patterns import PatternLibrary
from rosetta_gateway.tools.scanner import SlidingWindowScanner

logger = logging.getLogger(__name__)

DEFAULT_TOOL_NAME = "unknown_tool"


class BufferedResponseFixer:
    """Normalize tool blocks, recover tool calls written as text, dedupe ids.

    Every change is recorded in ``fixes_applied``; problems that are reported
    but left in place go to ``issues``. Running the fixer on its own output
    applies no further fixes.
    """

    def __init__(
        self,
        library: PatternLibrary,
        extractor: ToolCallExtractor,
        discard_narrative_text: bool = True,
        window_size: int = 2048,
        context_chars: int = 160,
        max_pending_chars: int = 64 * 1024,
        id_prefix: str = "toolu_",
        request_logger: Optional[RequestLogger] = None,
    ) -> None:
        self.library = library
        self.extractor = extractor
        self.discard_narrative_text = discard_narrative_text
        self.window_size = window_size
        self.context_chars = context_chars
        self.max_pending_chars = max_pending_chars
        self.id_prefix = id_prefix
        self.log = request_logger or RequestLogger(logger)

    def fix(self, envelope: Union[ResponseEnvelope, Mapping[str, Any]]) -> FixedEnvelope:
        if isinstance(envelope, ResponseEnvelope):
            raw = envelope.model_dump()
        elif isinstance(envelope, Mapping):
            raw = dict(envelope)
        else:
            raise MalformedUnit(f"Cannot fix a response of type {type(envelope).__name__}")

        blocks = raw.get("content")
        if blocks is None:
            blocks = []
        if not isinstance(blocks, list):
            raise MalformedUnit("Response content must be a list of blocks")

        fixes: List[str] = []
        content: List[ContentBlock] = []
        detected: List[ToolCallCandidate] = []
        for position, block in enumerate(blocks):
            if not isinstance(block, Mapping):
                raise MalformedUnit(f"Content block {position} is not an object")
            block_type = block.get("type")
            if block_type == "tool_use":
                tool = self._fix_tool_block(block, position, fixes)
                content.append(tool)
                detected.append(ToolCallCandidate.structured(tool.name))
            elif block_type == "text":
                content.extend(self._fix_text_block(block, position, fixes, detected))
            else:
                raise MalformedUnit(f"Content block {position} has unsupported type '{block_type}'")

        issues = self._validate(content, fixes)
        raw["content"] = content
        fixed = FixedEnvelope(
            envelope=ResponseEnvelope.model_validate(raw), fixes_applied=fixes, issues=issues, detected=detected
        )
        if fixes:
            self.log.info(f"[FIXER] Applied {len(fixes)} fixes", data={"fixes": fixes})
        if issues:
            self.log.warning(f"[FIXER] {len(issues)} issues left in response", data={"issues": issues})
        return fixed

    def _fix_tool_block(self, block: Mapping[str, Any], position: int, fixes: List[str]) -> ToolUseBlock:
        tool_id = block.get("id")
        if not isinstance(tool_id, str) or not tool_id.strip():
            tool_id = generate_tool_id(self.id_prefix)
            fixes.append(f"block {position}: generated missing tool id {tool_id}")

        name = block.get("name")
        if not isinstance(name, str) or not name.strip():
            name = DEFAULT_TOOL_NAME
            fixes.append(f"block {position}: set missing tool name to {name}")

        raw_input = block.get("input")
        try:
            inputs, changed = coerce_arguments(raw_input)
        except ExtractionFailure as e:
            inputs, changed = {}, True
            self.log.warning(f"[FIXER] Tool input of block {position} unparseable: {e.message}")
        if changed:
            fixes.append(f"block {position}: normalized {type(raw_input).__name__} tool input to a mapping")
        return ToolUseBlock(id=tool_id, name=name, input=inputs)

    def _fix_text_block(
        self, block: Mapping[str, Any], position: int, fixes: List[str], detected: List[ToolCallCandidate]
    ) -> List[ContentBlock]:
        text = block.get("text")
        if text is None:
            text = ""
        if not isinstance(text, str):
            raise MalformedUnit(f"Text block {position} has non-string text")
        if not text:
            return [TextBlock(text=text)]

        scanner = SlidingWindowScanner(
            self.library, self.window_size, self.context_chars, self.max_pending_chars, self.log
        )
        scanner.update(text)
        scanner.finish()
        detection = scanner.total()
        if not detection.candidates:
            return [TextBlock(text=text)]

        replaced: List[ContentBlock] = []
        narrative: List[str] = []
        candidates: List[ToolCallCandidate] = []

        def flush_narrative() -> None:
            if narrative and not self.discard_narrative_text:
                replaced.append(TextBlock(text="".join(narrative)))
            narrative.clear()

        for item in detection.ordered():
            if isinstance(item, TextSegment):
                narrative.append(item.text)
                continue
            result = self.extractor.extract(item)
            if isinstance(result, TextFallback):
                narrative.append(result.text)
                continue
            flush_narrative()
            replaced.append(result)
            candidates.append(item)
        flush_narrative()

        if not candidates:
            return [TextBlock(text=text)]
        detected.extend(candidates)
        action = "discarded" if self.discard_narrative_text else "kept"
        fixes.append(f"block {position}: extracted {len(candidates)} tool calls from text, narrative {action}")
        return replaced

    def _validate(self, content: List[ContentBlock], fixes: List[str]) -> List[str]:
        issues: List[str] = []
        seen: Set[str] = set()
        for position, block in enumerate(content):
            if isinstance(block, ToolUseBlock):
                if block.id in seen:
                    old = block.id
                    block.id = generate_tool_id(self.id_prefix)
                    fixes.append(f"block {position}: regenerated duplicate tool id {old} as {block.id}")
                seen.add(block.id)
                if not block.input:
                    issues.append(f"block {position}: tool {block.name} has an empty input")
            elif not block.text:
                issues.append(f"block {position}: empty text block")
        return issues

