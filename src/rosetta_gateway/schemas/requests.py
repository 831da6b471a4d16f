"""Outbound request shapes and the truncation ladder records."""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChatRequest(BaseModel):
    """Outbound chat request, dialect-neutral enough for the recovery ladder.

    Unknown fields are preserved so a reduced request can be resent as-is.
    """

    model_config = ConfigDict(extra="allow")

    model: Optional[str] = None
    system: Optional[Union[str, List[Dict[str, Any]]]] = None
    messages: List[Dict[str, Any]]
    tools: Optional[List[Dict[str, Any]]] = None
    max_tokens: Optional[int] = None
    stream: bool = False

    @field_validator("messages")
    @classmethod
    def validate_messages(cls, value: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not value:
            raise ValueError("messages must contain at least one entry")
        return value


class TruncationStep(BaseModel):
    history_retention_percent: int = Field(..., gt=0, le=100)
    use_simplified_prompt: bool = False


class TruncationPlan(BaseModel):
    steps: List[TruncationStep] = Field(..., min_length=1)

    @field_validator("steps")
    @classmethod
    def validate_descending(cls, value: List[TruncationStep]) -> List[TruncationStep]:
        retention = [step.history_retention_percent for step in value]
        if retention != sorted(retention, reverse=True):
            raise ValueError("truncation steps must keep a descending share of history")
        return value

    @classmethod
    def from_config(cls, steps: List[Dict[str, Any]]) -> "TruncationPlan":
        return cls(steps=[TruncationStep.model_validate(step) for step in steps])


class TruncationResult(BaseModel):
    original_tokens: int = Field(..., ge=0)
    reduced_tokens: int = Field(..., ge=0)
    truncated_request: ChatRequest
    strategy_step: int = Field(..., ge=0, description="Index of the accepted ladder step")


class Unrecoverable(BaseModel):
    original_tokens: int = Field(..., ge=0)
    limit: int = Field(..., ge=1)
    attempted_steps: int = Field(..., ge=0)
    remediation: str = "Reduce input length or increase the token limit."


__all__ = ["ChatRequest", "TruncationStep", "TruncationPlan", "TruncationResult", "Unrecoverable"]
