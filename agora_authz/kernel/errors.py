"""
Error taxonomy for identity, access-code and policy operations.

Services raise these; the API layer maps each to an HTTP status.
Validation of an access code is NOT an error path: it returns a
structured result with a reason instead.
"""

from datetime import datetime
from typing import Optional


class AuthorizationError(Exception):
    """Base class for every error raised by the authorization kernel."""

    status_code: int = 400
    reason: str = "authorization_error"

    def __init__(self, message: str = "", reason: Optional[str] = None):
        super().__init__(message or self.__class__.__name__)
        if reason is not None:
            self.reason = reason

    @property
    def message(self) -> str:
        return str(self.args[0])


class Unauthenticated(AuthorizationError):
    """No credential, or no credential that resolves to a principal."""

    status_code = 401
    reason = "unauthenticated"


class Forbidden(AuthorizationError):
    """Authenticated but not authorized."""

    status_code = 403
    reason = "forbidden"


class RateLimited(AuthorizationError):
    """Too many failed access-code validations from one source."""

    status_code = 429
    reason = "rate_limited"

    def __init__(self, blocked_until: datetime, message: str = "Too many failed attempts"):
        super().__init__(message)
        self.blocked_until = blocked_until


class ConstraintViolation(AuthorizationError):
    """The operation would break a hard invariant; nothing was applied."""

    status_code = 400
    reason = "constraint_violation"


class Conflict(AuthorizationError):
    """State changed between check and use."""

    status_code = 409
    reason = "conflict"


class CodeNoLongerValid(Conflict):
    """Access code was exhausted, expired or deactivated at consume time."""

    reason = "no_longer_valid"


class GenerationExhausted(AuthorizationError):
    """No unique, acceptable access code found within the attempt cap."""

    status_code = 503
    reason = "generation_exhausted"


class PolicyRecursionError(AuthorizationError):
    """A policy predicate re-entered the guarded read path of its own resource type."""

    status_code = 500
    reason = "policy_recursion"


class AuditLogImmutableError(AuthorizationError):
    """Attempted update or delete of an append-only security event."""

    status_code = 500
    reason = "audit_log_immutable"
