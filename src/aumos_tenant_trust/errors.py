"""Error taxonomy for aumos-tenant-trust.

Every security-relevant error is fail-closed: the API layer renders each one
as a denial with its itemized reasons (see ``api/errors.py``). Nothing here is
ever downgraded to a warning by the service layer.
"""

from typing import Any


class TrustBoundaryError(Exception):
    """Base class for all trust-boundary errors.

    Attributes:
        code: Stable machine-readable error code.
        status_code: HTTP status the API layer responds with.
        reasons: Itemized reasons (violations) behind the error.
    """

    code = "TRUST_BOUNDARY_ERROR"
    status_code = 500

    def __init__(self, message: str, reasons: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.reasons: list[str] = list(reasons or [])

    def to_payload(self) -> dict[str, Any]:
        """Serialize the error for an HTTP response body."""
        return {
            "error": self.message,
            "code": self.code,
            "violations": self.reasons,
        }


class AuthenticationRequired(TrustBoundaryError):
    """No authenticated principal accompanies the request."""

    code = "AUTHENTICATION_REQUIRED"
    status_code = 401


class ResolutionFailure(TrustBoundaryError):
    """No tenant candidate could be resolved to a known tenant."""

    code = "MISSING_TENANT_CONTEXT"
    status_code = 400


class LookupFailure(TrustBoundaryError):
    """A directory or provider collaborator was unreachable.

    Attributes:
        transient: Whether a retry may succeed (network errors, 5xx).
    """

    code = "LOOKUP_FAILURE"
    status_code = 500

    def __init__(
        self,
        message: str,
        reasons: list[str] | None = None,
        transient: bool = True,
    ) -> None:
        super().__init__(message, reasons)
        self.transient = transient


class IsolationViolation(TrustBoundaryError):
    """Principal, resource, residency or jurisdiction crossed a tenant boundary."""

    code = "TENANT_ISOLATION_VIOLATION"
    status_code = 403


class ThreatDetected(TrustBoundaryError):
    """Assistant input matched a blocking threat pattern.

    ``reasons`` holds violation types only, never the matched content.
    """

    code = "AI_SECURITY_VIOLATION"
    status_code = 403


class StructuralViolation(TrustBoundaryError):
    """Assistant input exceeded size or nesting bounds and blocking is configured."""

    code = "AI_STRUCTURAL_VIOLATION"
    status_code = 403


class RateLimitExceeded(TrustBoundaryError):
    """Too many assistant requests for one tenant user within the window."""

    code = "TENANT_AI_RATE_LIMIT_EXCEEDED"
    status_code = 429


class PublicRateLimitExceeded(RateLimitExceeded):
    """Too many public assistant requests from one client fingerprint."""

    code = "AI_RATE_LIMIT_EXCEEDED"


class AggregationPartialFailure(TrustBoundaryError):
    """One or more jurisdiction assessments failed, timed out or were missing.

    A unified score is never produced from a partial set. The jurisdictions
    that did succeed are exposed, explicitly labeled partial.
    """

    code = "AGGREGATION_PARTIAL_FAILURE"
    status_code = 500

    def __init__(
        self,
        message: str,
        succeeded: list[str],
        failed: dict[str, str],
    ) -> None:
        super().__init__(
            message,
            [f"{jurisdiction}: {reason}" for jurisdiction, reason in sorted(failed.items())],
        )
        self.succeeded = sorted(succeeded)
        self.failed = dict(sorted(failed.items()))

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["partial"] = True
        payload["succeeded_jurisdictions"] = self.succeeded
        payload["failed_jurisdictions"] = self.failed
        return payload


class AuthorizationError(TrustBoundaryError):
    """The principal lacks the role required for an administrative operation."""

    code = "INSUFFICIENT_PERMISSIONS"
    status_code = 403
