"""Assemble structured upstream tool call deltas into tool-use blocks."""

import logging
from typing import Any, Dict, List, Optional

from rosetta_gateway.errors import ExtractionFailure
from rosetta_gateway.log import RequestLogger
from rosetta_gateway.schemas import ToolUseBlock
from rosetta_gateway.tools.extractor import coerce_arguments, generate_tool_id

logger = logging.getLogger(__name__)


class ToolCallAccumulator:
    """Buffers tool call fragments keyed by their upstream index.

    OpenAI streams ``tool_calls[i]`` with the name first and the arguments in
    string fragments, Anthropic streams ``input_json_delta`` pieces for a
    block index, Gemini sends whole ``functionCall`` parts. All three end up
    here and are finalized once the stream ends.
    """

    def __init__(self, id_prefix: str = "toolu_", request_logger: Optional[RequestLogger] = None) -> None:
        self.id_prefix = id_prefix
        self.log = request_logger or RequestLogger(logger)
        self._calls: Dict[int, Dict[str, Any]] = {}

    def __bool__(self) -> bool:
        return bool(self._calls)

    def __len__(self) -> int:
        return len(self._calls)

    def add(
        self,
        index: Optional[int] = None,
        id: Optional[str] = None,
        name: Optional[str] = None,
        arguments: Optional[str] = None,
        input: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Merge one fragment. ``arguments`` is appended, ``input`` replaces.

        Without an index the fragment is a whole call and gets the next free slot.
        """
        if index is None:
            index = max(self._calls) + 1 if self._calls else 0
        call = self._calls.setdefault(index, {"id": None, "name": "", "arguments": "", "input": None})
        if id and not call["id"]:
            call["id"] = id
        if name:
            # OpenAI sends the full name once; some servers repeat it on every delta.
            if not call["name"].endswith(name):
                call["name"] += name
        if arguments:
            call["arguments"] += arguments
        if input is not None:
            call["input"] = input

    def flush(self) -> List[ToolUseBlock]:
        """Finalize every buffered call in index order and clear the buffer."""
        blocks: List[ToolUseBlock] = []
        for index in sorted(self._calls):
            call = self._calls[index]
            name = call["name"].strip()
            if not name:
                self.log.warning(f"[ACCUMULATOR] Tool call at index {index} has no name; dropped")
                continue
            if call["input"] is not None and not call["arguments"]:
                arguments = call["input"]
            else:
                arguments = call["arguments"]
            try:
                inputs, _ = coerce_arguments(arguments)
            except ExtractionFailure as e:
                self.log.warning(
                    f"[ACCUMULATOR] Arguments for {name} could not be parsed, using an empty input: {e.message}",
                    data={"error_type": e.error_type, "index": index},
                )
                inputs = {}
            blocks.append(ToolUseBlock(id=call["id"] or generate_tool_id(self.id_prefix), name=name, input=inputs))
        self._calls.clear()
        return blocks

    def reset(self) -> None:
        self._calls.clear()
