"""
API request/response schemas.
"""

from agora_authz.schemas.common import ErrorResponse, HealthResponse
from agora_authz.schemas.principal import (
    ArchiveRequest,
    PrincipalProfileUpdate,
    PrincipalResponse,
    RoleChangeRequest,
)
from agora_authz.schemas.access_code import (
    AccessCodeIssueRequest,
    AccessCodeResponse,
    AccessCodeSignInRequest,
    AccessCodeStatusResponse,
    AccessCodeValidateRequest,
    SignInResponse,
)
from agora_authz.schemas.authz import (
    AuditEventCreate,
    AuditEventResponse,
    DecisionResponse,
    EvaluateRequest,
)

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "ArchiveRequest",
    "PrincipalProfileUpdate",
    "PrincipalResponse",
    "RoleChangeRequest",
    "AccessCodeIssueRequest",
    "AccessCodeResponse",
    "AccessCodeSignInRequest",
    "AccessCodeStatusResponse",
    "AccessCodeValidateRequest",
    "SignInResponse",
    "AuditEventCreate",
    "AuditEventResponse",
    "DecisionResponse",
    "EvaluateRequest",
]
