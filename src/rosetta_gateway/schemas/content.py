"""Canonical content blocks and response envelopes."""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from rosetta_gateway.schemas.detection import ToolCallCandidate


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str = Field(default="", description="Text content of the block")


class ToolUseBlock(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    id: str = Field(..., description="Identifier unique within one response")
    name: str = Field(..., description="Name of the invoked tool")
    input: Dict[str, Any] = Field(default_factory=dict, description="Parsed tool arguments")


ContentBlock = Annotated[Union[TextBlock, ToolUseBlock], Field(discriminator="type")]


class Usage(BaseModel):
    input_tokens: int = Field(0, ge=0)
    output_tokens: int = Field(0, ge=0)


class ResponseEnvelope(BaseModel):
    """A fully materialized canonical response.

    ``content`` keeps the original text order: tool calls recovered from text
    take the place of the span they were extracted from.
    """

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    model: Optional[str] = None
    content: List[ContentBlock] = Field(default_factory=list)
    usage: Optional[Usage] = None
    terminal_reason: Optional[str] = Field(None, description="Terminal reason in the target vocabulary")

    def tool_uses(self) -> List[ToolUseBlock]:
        return [block for block in self.content if isinstance(block, ToolUseBlock)]

    def text(self) -> str:
        return "".join(block.text for block in self.content if isinstance(block, TextBlock))


class FixedEnvelope(BaseModel):
    envelope: ResponseEnvelope
    fixes_applied: List[str] = Field(default_factory=list)
    issues: List[str] = Field(default_factory=list, description="Problems detected but left in place")
    detected: List[ToolCallCandidate] = Field(
        default_factory=list, description="One candidate per tool block, structured or extracted from text"
    )


__all__ = ["TextBlock", "ToolUseBlock", "ContentBlock", "Usage", "ResponseEnvelope", "FixedEnvelope"]
