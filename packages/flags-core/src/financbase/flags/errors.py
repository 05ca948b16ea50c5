"""Feature flag errors.

Only store-level failures are true errors during evaluation. A missing flag
or an anonymous context for a percentage rule is reported on the
FlagEvaluation result instead of being raised.
"""

from __future__ import annotations


class FlagError(Exception):
    pass


class FlagNotFoundError(FlagError):
    def __init__(self, flag_key: str) -> None:
        super().__init__(f"Feature flag '{flag_key}' not found")
        self.flag_key = flag_key


class FlagAlreadyExistsError(FlagError):
    def __init__(self, flag_key: str) -> None:
        super().__init__(f"Feature flag '{flag_key}' already exists")
        self.flag_key = flag_key


class InvalidRuleError(FlagError, ValueError):
    pass


class EvaluationUnavailable(FlagError):
    """Flag definition could not be read (store down, timeout)."""

    def __init__(self, flag_key: str, reason: str = "") -> None:
        message = f"Flag store unavailable for '{flag_key}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.flag_key = flag_key
        self.reason = reason


StoreUnavailable = EvaluationUnavailable
