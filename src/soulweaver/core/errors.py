"""Soulweaver Error System.

Provides structured error handling with:
- Numeric error codes for programmatic handling
- User-friendly messages naming the operation and entity
- Recovery hints for callers that can retry

Only genuine failures are raised. Stale locks, malformed soul files,
guardrail warnings and anti-echo-chamber blocks are reported through
logging and result metadata instead.
"""


from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Numeric error codes organized by category.

    Format: XYYY where X = category, YYY = specific error

    Categories:
        1xxx - Provider errors (oracle, classifier, generator)
        2xxx - Synthesis errors
        3xxx - Cycle errors (locking, persistence)
        5xxx - Configuration errors
    """

    # 1xxx - Provider Errors
    PROVIDER_REQUIRED = 1001
    ORACLE_UNAVAILABLE = 1002
    ORACLE_RESPONSE_INVALID = 1003
    CLASSIFIER_UNAVAILABLE = 1004
    GENERATOR_UNAVAILABLE = 1005

    # 2xxx - Synthesis Errors
    THRESHOLD_INVALID = 2001
    SIGNAL_INVALID = 2002

    # 3xxx - Cycle Errors
    SYNTHESIS_IN_PROGRESS = 3001
    LOCK_RELEASE_FAILED = 3002
    SOUL_WRITE_FAILED = 3003

    # 5xxx - Configuration Errors
    CONFIG_INVALID = 5001

    @property
    def category(self) -> str:
        """Get the error category name."""
        prefix = self.value // 1000
        return {
            1: "provider",
            2: "synthesis",
            3: "cycle",
            5: "config",
        }.get(prefix, "unknown")

    @property
    def is_recoverable(self) -> bool:
        """Whether this error type is typically recoverable."""
        non_recoverable = {
            ErrorCode.PROVIDER_REQUIRED,
            ErrorCode.THRESHOLD_INVALID,
            ErrorCode.SIGNAL_INVALID,
            ErrorCode.CONFIG_INVALID,
        }
        return self not in non_recoverable


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.PROVIDER_REQUIRED: "A {provider} is required for {operation}. No fallback available.",
    ErrorCode.ORACLE_UNAVAILABLE: "Semantic oracle failed during {operation} for '{entity}': {detail}",
    ErrorCode.ORACLE_RESPONSE_INVALID: "Semantic oracle returned an invalid response during {operation} for '{entity}': {detail}",
    ErrorCode.CLASSIFIER_UNAVAILABLE: "Classifier failed during {operation} for '{entity}': {detail}",
    ErrorCode.GENERATOR_UNAVAILABLE: "Text generator failed during {operation} for '{entity}': {detail}",

    ErrorCode.THRESHOLD_INVALID: "Invalid threshold for {operation}: {detail}",
    ErrorCode.SIGNAL_INVALID: "Invalid signal '{entity}' for {operation}: {detail}",

    ErrorCode.SYNTHESIS_IN_PROGRESS: "Synthesis already in progress for '{entity}' (PID: {pid}). Remove {lock_path} if stale.",
    ErrorCode.LOCK_RELEASE_FAILED: "Failed to release synthesis lock for '{entity}': {detail}",
    ErrorCode.SOUL_WRITE_FAILED: "Failed to write soul state for '{entity}': {detail}",

    ErrorCode.CONFIG_INVALID: "Invalid configuration for '{key}': {detail}",
}


RECOVERY_HINTS: dict[ErrorCode, list[str]] = {
    ErrorCode.PROVIDER_REQUIRED: [
        "Pass a {provider} explicitly when constructing the component",
        "Keyword matching is not a substitute for semantic comparison",
    ],
    ErrorCode.ORACLE_UNAVAILABLE: [
        "Check that the model service backing the oracle is running",
        "Retry the synthesis run once the oracle is reachable",
    ],
    ErrorCode.SYNTHESIS_IN_PROGRESS: [
        "Wait for the running synthesis to finish and retry",
        "If PID {pid} no longer exists the lock is reclaimed automatically on the next attempt",
    ],
}


class SoulweaverError(Exception):
    """Base error type for all Soulweaver errors.

    Example:
        >>> err = SoulweaverError(
        ...     code=ErrorCode.PROVIDER_REQUIRED,
        ...     context={"provider": "semantic oracle", "operation": "match_best"},
        ... )
        >>> print(err)
        [SW-1001] A semantic oracle is required for match_best. No fallback available.
    """

    def __init__(
        self,
        code: ErrorCode,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        self.code = code
        self.context = context or {}
        self.cause = cause
        super().__init__(str(self))

    @property
    def message(self) -> str:
        """Get the formatted user-friendly message."""
        template = ERROR_MESSAGES.get(self.code, "An error occurred: {detail}")
        try:
            return template.format(**self.context)
        except KeyError:
            return template

    @property
    def recovery_hints(self) -> list[str]:
        """Get recovery suggestions for this error."""
        formatted = []
        for hint in RECOVERY_HINTS.get(self.code, []):
            try:
                formatted.append(hint.format(**self.context))
            except KeyError:
                formatted.append(hint)
        return formatted

    @property
    def operation(self) -> str | None:
        """Name of the operation that failed, when known."""
        return self.context.get("operation")

    @property
    def is_recoverable(self) -> bool:
        return self.code.is_recoverable

    @property
    def category(self) -> str:
        return self.code.category

    @property
    def error_id(self) -> str:
        """Get the error ID string (e.g., 'SW-3001')."""
        return f"SW-{self.code.value}"

    def __str__(self) -> str:
        return f"[{self.error_id}] {self.message}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, context={self.context!r})"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict for logging."""
        return {
            "error_id": self.error_id,
            "code": self.code.value,
            "category": self.category,
            "message": self.message,
            "recoverable": self.is_recoverable,
            "recovery_hints": self.recovery_hints,
            "context": self.context,
        }


class ProviderRequiredError(SoulweaverError):
    """A provider was not supplied. This is a programming error."""

    def __init__(self, provider: str, operation: str):
        super().__init__(
            ErrorCode.PROVIDER_REQUIRED,
            context={"provider": provider, "operation": operation},
        )


class ProviderUnavailableError(SoulweaverError):
    """A provider raised or answered with something unusable.

    Fatal for the run: callers never degrade to a weaker heuristic.
    """


class SynthesisInProgressError(SoulweaverError):
    """Another live process holds the synthesis lock."""

    def __init__(self, workspace: str, pid: str, lock_path: str):
        super().__init__(
            ErrorCode.SYNTHESIS_IN_PROGRESS,
            context={
                "operation": "acquire_lock",
                "entity": workspace,
                "pid": pid,
                "lock_path": lock_path,
            },
        )


def provider_error(
    code: ErrorCode,
    operation: str,
    entity: str,
    detail: str = "",
    cause: Exception | None = None,
) -> ProviderUnavailableError:
    """Create a provider failure error."""
    return ProviderUnavailableError(
        code=code,
        context={"operation": operation, "entity": entity, "detail": detail},
        cause=cause,
    )


def require_provider(provider: object | None, kind: str, operation: str) -> None:
    """Raise ProviderRequiredError when a provider is missing."""
    if provider is None:
        raise ProviderRequiredError(kind, operation)


def config_error(key: str, detail: str) -> SoulweaverError:
    """Create a configuration error."""
    return SoulweaverError(
        code=ErrorCode.CONFIG_INVALID,
        context={"key": key, "detail": detail},
    )
