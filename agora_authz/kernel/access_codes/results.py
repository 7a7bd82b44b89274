"""
Result payloads returned by access-code validation and consumption.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ValidationReason:
    """Reasons a validation can fail, in check order."""

    RATE_LIMITED = "rate_limited"
    INVALID_FORMAT = "invalid_format"
    CODE_NOT_FOUND = "code_not_found"
    CODE_INACTIVE = "code_inactive"
    CODE_EXPIRED = "code_expired"
    MAX_USES_EXCEEDED = "max_uses_exceeded"


class ValidationResult(BaseModel):
    """Outcome of validate(); safe to return to the caller as-is."""

    valid: bool
    reason: Optional[str] = None
    code_type: Optional[str] = None
    remaining_uses: Optional[int] = None
    blocked_until: Optional[datetime] = None

    @classmethod
    def failed(cls, reason: str) -> "ValidationResult":
        return cls(valid=False, reason=reason)


class ConsumeResult(BaseModel):
    """Outcome of a successful consume()."""

    success: bool = True
    code_type: str
    remaining_uses: Optional[int] = None
