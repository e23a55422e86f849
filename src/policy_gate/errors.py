"""Error taxonomy for Policy Gate.

Fatal errors (analyzer failure, policy store unreachable) make a review
fail-secure: the orchestrator turns them into a blocked, failed result.
Usage errors carry a machine-readable status that callers must see as-is.
"""

from enum import Enum


class PolicyGateError(Exception):
    """Base class for all Policy Gate errors."""

    remediation: str = "Resolve the error and retry the evaluation."

    def __init__(self, message: str, remediation: str | None = None) -> None:
        super().__init__(message)
        if remediation is not None:
            self.remediation = remediation


class MalformedFindingError(PolicyGateError):
    """Raised when an analyzer hands back a finding that fails validation."""

    remediation = "Fix the analyzer output so every finding has ruleId, severity, file, line and message."


class AnalyzerError(PolicyGateError):
    """Raised when an analyzer cannot produce findings for a file."""

    remediation = "Retry in 60 seconds. If the analyzer keeps failing, check its availability."

    def __init__(
        self,
        message: str,
        analyzer: str = "unknown",
        file_path: str | None = None,
        remediation: str | None = None,
    ) -> None:
        super().__init__(message, remediation)
        self.analyzer = analyzer
        self.file_path = file_path


class AnalyzerTimeoutError(AnalyzerError):
    """Raised when an analyzer call exceeds its time budget."""

    remediation = "Retry the review. Consider raising orchestrator.timeout_seconds for large changes."


class PolicyStoreError(PolicyGateError):
    """Raised when policy configuration cannot be loaded."""

    remediation = "Check that the policy store is reachable, then retry."


class EvidenceStoreError(PolicyGateError):
    """Raised when an evidence bundle cannot be persisted."""


class EvidenceNotFoundError(PolicyGateError):
    """Raised when an evidence bundle id is unknown."""

    def __init__(self, bundle_id: str) -> None:
        super().__init__(f"Evidence bundle not found: {bundle_id}")
        self.bundle_id = bundle_id


class PolicySourceError(PolicyGateError):
    """Raised when a policy source document cannot be parsed."""

    remediation = "Policy source must be JSON or YAML with a version and a rules list."


class LimitStatus(Enum):
    """Why a usage limit rejected the request."""

    RATE_LIMITED = "rate_limited"
    BUDGET_EXHAUSTED = "budget_exhausted"


_LIMIT_HTTP_STATUS = {
    LimitStatus.RATE_LIMITED: 429,
    LimitStatus.BUDGET_EXHAUSTED: 402,
}


class UsageLimitExceededError(PolicyGateError):
    """Raised when an analyzer backend rejects work for quota reasons.

    The status is preserved verbatim up the stack and mapped to its own
    HTTP status by the API layer.
    """

    def __init__(
        self,
        status: LimitStatus,
        message: str,
        current: int | None = None,
        limit: int | None = None,
    ) -> None:
        remediation = (
            "Wait for the rate limit window to reset and retry."
            if status is LimitStatus.RATE_LIMITED
            else "Increase the analysis budget or upgrade the plan, then retry."
        )
        super().__init__(message, remediation)
        self.status = status
        self.current = current
        self.limit = limit

    @property
    def http_status(self) -> int:
        return _LIMIT_HTTP_STATUS[self.status]

    def to_dict(self) -> dict:
        return {
            "code": "USAGE_LIMIT_EXCEEDED",
            "status": self.status.value,
            "message": str(self),
            "current": self.current,
            "limit": self.limit,
            "remediation": self.remediation,
        }
