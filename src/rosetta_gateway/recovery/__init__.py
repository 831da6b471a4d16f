from rosetta_gateway.recovery.estimator import estimate_tokens
from rosetta_gateway.recovery.ladder import MaxTokensRecovery, RecoveryAttempts, retain_history
from rosetta_gateway.recovery.runner import complete_with_recovery

__all__ = ["MaxTokensRecovery", "RecoveryAttempts", "complete_with_recovery", "estimate_tokens", "retain_history"]
