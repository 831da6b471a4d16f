"""Caller-side loop that resends a reduced request after a max-tokens stop."""

import logging
from typing import Any, Awaitable, Callable, Optional, Protocol

from rosetta_gateway.errors import TokenLimitExceeded, UnrecoverableTokenLimit
from rosetta_gateway.log import RequestLogger
from rosetta_gateway.reasons import TerminalReason, Vocabulary
from rosetta_gateway.recovery.ladder import MaxTokensRecovery, RecoveryAttempts
from rosetta_gateway.schemas import ChatRequest, ResponseEnvelope, Unrecoverable

logger = logging.getLogger(__name__)


class Normalizer(Protocol):
    vocabulary: Vocabulary

    def normalize(self, raw: Any) -> ResponseEnvelope: ...


async def complete_with_recovery(
    send: Callable[[ChatRequest], Awaitable[Any]],
    request: ChatRequest,
    limit: int,
    normalizer: Callable[[], Normalizer],
    attempts: RecoveryAttempts,
    recovery: Optional[MaxTokensRecovery] = None,
    request_logger: Optional[RequestLogger] = None,
) -> ResponseEnvelope:
    """Send ``request`` and, on a max-tokens stop, retry with reduced history.

    ``normalizer`` builds a fresh buffered normalizer per response. Retries are
    bounded by ``attempts``; an exhausted ladder or budget raises
    ``UnrecoverableTokenLimit`` and nothing is resent.
    """
    log = request_logger or RequestLogger(logger)
    recovery = recovery or MaxTokensRecovery(request_logger=log)
    current = request
    while True:
        raw = await send(current)
        current_normalizer = normalizer()
        envelope = current_normalizer.normalize(raw)
        if envelope.terminal_reason != current_normalizer.vocabulary.token(TerminalReason.MAX_TOKENS):
            return envelope

        exceeded = TokenLimitExceeded(f"Response stopped at the token limit of {limit}")
        log.warning(f"[RECOVERY] {exceeded.message}; {exceeded.remediation}", data={"limit": limit})
        attempt = attempts.consume()
        outcome = recovery.recover(current, limit)
        if isinstance(outcome, Unrecoverable):
            raise UnrecoverableTokenLimit(
                f"Request of ~{outcome.original_tokens} tokens does not fit the limit of {limit} "
                f"after {outcome.attempted_steps} truncation steps",
                remediation=outcome.remediation,
                data=outcome.model_dump(),
            )
        log.info(
            f"[RECOVERY] Attempt {attempt}: resending with step {outcome.strategy_step} "
            f"({outcome.original_tokens} -> {outcome.reduced_tokens} tokens)"
        )
        current = outcome.truncated_request
