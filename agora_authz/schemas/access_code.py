"""
Access-code schemas.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from agora_authz.kernel.access_codes.results import ConsumeResult, ValidationResult
from agora_authz.kernel.models.access_code import AccessCodeType
from agora_authz.schemas.principal import PrincipalResponse


class AccessCodeValidateRequest(BaseModel):
    """Validate a code without using it."""

    # Format is checked by the service so malformed input gets a structured reason
    code: str = Field(..., max_length=64)


class AccessCodeSignInRequest(BaseModel):
    code: str = Field(..., max_length=64)


class AccessCodeIssueRequest(BaseModel):
    """Issue a code. Non-admins may only ask for a single-use user code."""

    code_type: AccessCodeType = AccessCodeType.USER
    max_uses: Optional[int] = Field(1, ge=1)
    expires_at: Optional[datetime] = None


class AccessCodeResponse(BaseModel):
    """Issued access code. The only response that carries the full code."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: str
    code_type: str
    is_active: bool
    current_uses: int
    max_uses: Optional[int] = None
    expires_at: Optional[datetime] = None
    state: str


class AccessCodeStatusResponse(BaseModel):
    """Admin view of a code after a lifecycle change."""

    id: uuid.UUID
    code_type: str
    is_active: bool
    current_uses: int
    max_uses: Optional[int] = None
    state: str


class SignInResponse(BaseModel):
    session_token: str
    token_type: str = "session"
    expires_in: int
    principal: PrincipalResponse


__all__ = [
    "AccessCodeIssueRequest",
    "AccessCodeResponse",
    "AccessCodeSignInRequest",
    "AccessCodeStatusResponse",
    "AccessCodeValidateRequest",
    "ConsumeResult",
    "SignInResponse",
    "ValidationResult",
]
