from rosetta_gateway.tools.accumulator import ToolCallAccumulator
from rosetta_gateway.tools.extractor import TextFallback, ToolCallExtractor, generate_tool_id
from rosetta_gateway.tools.patterns import ExclusionSpec, PatternLibrary, PatternSpec, load_library, resolve_overlaps
from rosetta_gateway.tools.repair import parse_json_with_repair
from rosetta_gateway.tools.scanner import SlidingWindowScanner

__all__ = [
    "ExclusionSpec",
    "PatternLibrary",
    "PatternSpec",
    "SlidingWindowScanner",
    "TextFallback",
    "ToolCallAccumulator",
    "ToolCallExtractor",
    "generate_tool_id",
    "load_library",
    "parse_json_with_repair",
    "resolve_overlaps",
]
