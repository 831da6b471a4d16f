"""Max-tokens recovery: shrink the conversation until it fits the limit."""

import logging
import math
from typing import Any, Dict, List, Optional, Union

from rosetta_gateway.errors import UnrecoverableTokenLimit
from rosetta_gateway.log import RequestLogger
from rosetta_gateway.recovery.estimator import estimate_tokens
from rosetta_gateway.schemas import ChatRequest, TruncationPlan, TruncationResult, TruncationStep, Unrecoverable
from rosetta_gateway.settings import DEFAULT_TRUNCATION_STEPS, Settings

logger = logging.getLogger(__name__)


def _is_orphan(message: Dict[str, Any]) -> bool:
    """A message that cannot open a conversation once its predecessors are gone."""
    role = message.get("role")
    if role in ("assistant", "tool"):
        return True
    content = message.get("content")
    if role == "user" and isinstance(content, list) and content:
        return all(isinstance(part, dict) and part.get("type") == "tool_result" for part in content)
    return False


def retain_history(messages: List[Dict[str, Any]], percent: int) -> List[Dict[str, Any]]:
    """Keep the most recent ``percent`` of messages, never fewer than one."""
    keep = max(1, math.floor(len(messages) * percent / 100))
    kept = messages[-keep:]
    while len(kept) > 1 and _is_orphan(kept[0]):
        kept = kept[1:]
    return list(kept)


class MaxTokensRecovery:
    """Try the truncation ladder in order and return the first step that fits.

    A step fits when its estimate is at or below ``target_ratio * limit``. The
    ladder never runs more than ``max_steps`` steps and keeps no state between
    calls; retry accounting belongs to the caller (see ``RecoveryAttempts``).
    """

    def __init__(
        self,
        plan: Optional[TruncationPlan] = None,
        target_ratio: float = 0.8,
        max_steps: int = 4,
        simplified_system_prompt: str = "You are a helpful assistant. Be concise.",
        chars_per_token: int = 4,
        request_logger: Optional[RequestLogger] = None,
    ) -> None:
        self.plan = plan or TruncationPlan.from_config(list(DEFAULT_TRUNCATION_STEPS))
        self.target_ratio = target_ratio
        self.max_steps = max_steps
        self.simplified_system_prompt = simplified_system_prompt
        self.chars_per_token = chars_per_token
        self.log = request_logger or RequestLogger(logger)

    @classmethod
    def from_settings(cls, settings: Settings, request_logger: Optional[RequestLogger] = None) -> "MaxTokensRecovery":
        return cls(
            plan=TruncationPlan.from_config(settings.truncation_steps),
            target_ratio=settings.truncation_target_ratio,
            max_steps=settings.max_truncation_steps,
            simplified_system_prompt=settings.simplified_system_prompt,
            chars_per_token=settings.chars_per_token,
            request_logger=request_logger,
        )

    def estimate(self, request: ChatRequest) -> int:
        return estimate_tokens(request, self.chars_per_token)

    def apply(self, request: ChatRequest, step: TruncationStep) -> ChatRequest:
        update: Dict[str, Any] = {"messages": retain_history(request.messages, step.history_retention_percent)}
        if step.use_simplified_prompt:
            update["system"] = self.simplified_system_prompt
        return request.model_copy(update=update, deep=True)

    def recover(self, request: ChatRequest, limit: int) -> Union[TruncationResult, Unrecoverable]:
        if limit < 1:
            raise ValueError("limit must be positive")
        original = self.estimate(request)
        target = limit * self.target_ratio
        steps = self.plan.steps[: self.max_steps]
        self.log.warning(
            f"[RECOVERY] Request of ~{original} tokens exceeds the limit of {limit}, target {target:.0f}",
            data={"original_tokens": original, "limit": limit, "target": target},
        )

        for index, step in enumerate(steps):
            reduced_request = self.apply(request, step)
            reduced = self.estimate(reduced_request)
            self.log.info(
                f"[RECOVERY] Step {index}: keep {step.history_retention_percent}% "
                f"simplified={step.use_simplified_prompt} -> ~{reduced} tokens"
            )
            if reduced <= target:
                return TruncationResult(
                    original_tokens=original,
                    reduced_tokens=reduced,
                    truncated_request=reduced_request,
                    strategy_step=index,
                )

        self.log.error(f"[RECOVERY] Ladder exhausted after {len(steps)} steps")
        return Unrecoverable(original_tokens=original, limit=limit, attempted_steps=len(steps))


class RecoveryAttempts:
    """Per-request budget of recovery retries, owned by the caller."""

    def __init__(self, max_attempts: int = 2) -> None:
        if not 1 <= max_attempts <= 2:
            raise ValueError("max_attempts must be 1 or 2")
        self.max_attempts = max_attempts
        self.used = 0

    @property
    def exhausted(self) -> bool:
        return self.used >= self.max_attempts

    def consume(self) -> int:
        if self.exhausted:
            raise UnrecoverableTokenLimit(
                f"Token limit still exceeded after {self.used} recovery attempts",
                data={"attempts": self.used},
            )
        self.used += 1
        return self.used
