"""Default recognizer tables for tool calls written as plain text.

Ordered from the most to the least specific. Each entry is plain data so the
tables can be replaced by a JSON file (see ``Settings.patterns_file``).
"""

from typing import Any, Dict, List

_ARGUMENT_KEYS = (
    "task|query|description|content|text|data|input|param|params|value|file|path|url|"
    "message|command|action|operation|request|city|location|code|prompt"
)

DEFAULT_PATTERNS: List[Dict[str, Any]] = [
    # High confidence: explicit tool-use markers
    {
        "name": "tool_call_tag",
        "regex": r"<tool_call>\s*",
        "kind": "tagged",
        "closing": r"\s*</tool_call>",
        "closing_token": "</tool_call>",
        "confidence": 1.0,
    },
    {"name": "anthropic_tool_use", "regex": r'\{\s*"type"\s*:\s*"tool_use"\s*,', "kind": "json", "confidence": 1.0},
    {"name": "anthropic_tool_id", "regex": r'\{\s*"id"\s*:\s*"toolu_[^"]+"\s*,', "kind": "json", "confidence": 1.0},
    {
        "name": "openai_tool_call_id",
        "regex": r'\{\s*"id"\s*:\s*"call_[^"]+"\s*,\s*"type"\s*:\s*"function"',
        "kind": "json",
        "confidence": 0.95,
    },
    {
        "name": "anthropic_name_input",
        "regex": r'\{\s*"name"\s*:\s*"[^"]+"\s*,\s*"input"\s*:\s*\{',
        "kind": "json",
        "confidence": 0.95,
    },
    {
        "name": "text_tool_call",
        "regex": r"Tool\s+call\s*:\s*(?P<tool>[\w.\-]+)\s*\(",
        "kind": "call",
        "confidence": 0.9,
        "flags": ["IGNORECASE"],
    },
    # Medium confidence: function-call shaped text
    {
        "name": "localized_tool_call",
        "regex": r"(?:工具调用|调用工具|函数调用)\s*[:：]\s*(?P<tool>[\w一-鿿.\-]+)\s*\(",
        "kind": "call",
        "confidence": 0.8,
    },
    {
        "name": "openai_function_object",
        "regex": r'\{\s*"function"\s*:\s*\{\s*"name"\s*:',
        "kind": "json",
        "confidence": 0.8,
    },
    {
        "name": "json_name_arguments",
        "regex": r'\{\s*"name"\s*:\s*"[^"]+"\s*,\s*"(?:arguments|parameters)"\s*:',
        "kind": "json",
        "confidence": 0.75,
    },
    {
        "name": "keyed_function_call",
        "regex": r'(?<![\w.])(?P<tool>[A-Za-z_][\w.]*)\s*\(\s*(?=\{[^}]*"(?:' + _ARGUMENT_KEYS + r')"\s*:)',
        "kind": "call",
        "confidence": 0.75,
        "flags": ["IGNORECASE"],
    },
    {
        "name": "localized_function_call",
        "regex": r'(?<![一-鿿])(?P<tool>[一-鿿]+)\s*\(\s*(?=\{\s*"[^"]+"\s*:)',
        "kind": "call",
        "confidence": 0.7,
    },
    {
        "name": "json_function_name",
        "regex": r'\{\s*"function_name"\s*:\s*"[^"]+"\s*,\s*"arguments"\s*:',
        "kind": "json",
        "confidence": 0.65,
    },
    {
        "name": "json_tool_name",
        "regex": r'\{\s*"tool_name"\s*:\s*"[^"]+"\s*,\s*"parameters"\s*:',
        "kind": "json",
        "confidence": 0.65,
    },
    {
        "name": "generic_function_call",
        "regex": r'(?<![\w.])(?P<tool>[A-Za-z_][\w.]*)\s*\(\s*(?=\{\s*"[^"]+"\s*:)',
        "kind": "call",
        "confidence": 0.55,
    },
    # Low confidence: prefixes that can only be completed by the next chunk
    {
        "name": "partial_tool_call",
        "regex": r"\bT(?:o(?:o(?:l(?:\s+(?:c(?:a(?:l(?:l(?:\s*:\s*(?:[\w.\-]+\s*\(?\s*)?)?)?)?)?)?)?)?)?)?$",
        "kind": "partial",
        "confidence": 0.6,
        "flags": ["IGNORECASE"],
    },
    {
        "name": "partial_localized_call",
        "regex": r"(?:工|工具|工具调|工具调用|调|调用|调用工|调用工具|函|函数|函数调|函数调用)"
        r"(?:\s*[:：]\s*(?:[\w一-鿿.\-]+\s*\(?\s*)?)?$",
        "kind": "partial",
        "confidence": 0.6,
    },
    {"name": "partial_json_name", "regex": r'\{\s*"name"\s*:\s*"[^"]*$', "kind": "partial", "confidence": 0.6},
    {"name": "partial_tool_use", "regex": r'\{\s*"type"\s*:\s*"tool_[^"]*$', "kind": "partial", "confidence": 0.6},
    {
        "name": "partial_tool_id",
        "regex": r'\{\s*"id"\s*:\s*"(?:toolu|call)_[^"]*$',
        "kind": "partial",
        "confidence": 0.6,
    },
    {
        "name": "partial_tag",
        "regex": r"<(?:t(?:o(?:o(?:l(?:_(?:c(?:a(?:l(?:l(?:>\s*)?)?)?)?)?)?)?)?)?)?$",
        "kind": "partial",
        "confidence": 0.5,
    },
    {
        "name": "partial_function",
        "regex": r"(?<![\w一-鿿.])[\w一-鿿.]+\s*\(\s*(?:\{[^}]*)?$",
        "kind": "partial",
        "confidence": 0.55,
    },
    {
        "name": "trailing_identifier",
        "regex": r"(?<![\w一-鿿.])[\w一-鿿.]+\s*$",
        "kind": "partial",
        "confidence": 0.3,
    },
]

DEFAULT_EXCLUSIONS: List[Dict[str, Any]] = [
    {
        "name": "personal_record",
        "regex": r'^\s*\{\s*"name"\s*:\s*"[^"]+"\s*,\s*"age"\s*:\s*\d+',
        "scope": "span",
        "max_confidence": 0.8,
        "flags": ["IGNORECASE"],
    },
    {
        "name": "plain_text_disclaimer",
        "regex": r"without\s+any\s+tool\s+calls|just\s+(?:normal|plain)\s+text|not\s+(?:a|an\s+actual)\s+tool\s+call",
        "scope": "context",
        "max_confidence": 0.95,
        "flags": ["IGNORECASE"],
    },
    {
        "name": "math_function",
        "regex": r"\bfunction\s+[a-z]\s*\(\s*[a-z]\s*\)\s*=|quadratic\s+function",
        "scope": "context",
        "max_confidence": 0.8,
        "flags": ["IGNORECASE"],
    },
]
