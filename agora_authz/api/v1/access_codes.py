"""
Access-code endpoints.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Request, status

from agora_authz.api.deps import CurrentPrincipal, DbSession, OptionalPrincipal, get_client_ip
from agora_authz.kernel.access_codes.access_code_service import AccessCodeService
from agora_authz.kernel.access_codes.results import ConsumeResult, ValidationResult
from agora_authz.kernel.errors import AuthorizationError
from agora_authz.kernel.identity.identity_service import IdentityService
from agora_authz.kernel.models.access_code import AccessCode
from agora_authz.kernel.models.base import utcnow
from agora_authz.schemas.access_code import (
    AccessCodeIssueRequest,
    AccessCodeResponse,
    AccessCodeSignInRequest,
    AccessCodeStatusResponse,
    AccessCodeValidateRequest,
    SignInResponse,
)
from agora_authz.schemas.principal import PrincipalResponse

router = APIRouter()


def _status(access_code: AccessCode, now: Optional[datetime] = None) -> AccessCodeStatusResponse:
    return AccessCodeStatusResponse(
        id=access_code.id,
        code_type=access_code.code_type,
        is_active=access_code.is_active,
        current_uses=access_code.current_uses,
        max_uses=access_code.max_uses,
        state=access_code.state(now or utcnow()).value,
    )


@router.post("/validate", response_model=ValidationResult)
async def validate_access_code(
    request: Request,
    data: AccessCodeValidateRequest,
    db: DbSession,
):
    """
    Check a code without using it.

    Always 200; the body says why a code was refused. Blocked sources get
    reason "rate_limited" and blocked_until.
    """
    service = AccessCodeService(db)
    return await service.validate(data.code, get_client_ip(request))


@router.post("/sign-in", response_model=SignInResponse)
async def sign_in(
    request: Request,
    data: AccessCodeSignInRequest,
    db: DbSession,
):
    """Exchange an access code for a principal and a session token."""
    identity_service = IdentityService(db)
    try:
        principal, token = await identity_service.sign_in_with_access_code(data.code, get_client_ip(request))
    except AuthorizationError:
        # Failed attempts still count toward the brute-force window
        await db.commit()
        raise

    return SignInResponse(
        session_token=token.session_token,
        token_type=token.token_type,
        expires_in=token.expires_in,
        principal=PrincipalResponse.model_validate(principal),
    )


@router.post("", response_model=AccessCodeResponse, status_code=status.HTTP_201_CREATED)
async def issue_access_code(
    request: Request,
    data: AccessCodeIssueRequest,
    principal: OptionalPrincipal,
    db: DbSession,
):
    """
    Issue a new access code.

    Admins choose type, use limit and expiry. Anyone else receives a
    single-use user code.
    """
    service = AccessCodeService(db)
    access_code = await service.issue_code(
        requester=principal,
        code_type=data.code_type,
        max_uses=data.max_uses,
        expires_at=data.expires_at,
        ip_address=get_client_ip(request),
    )
    return AccessCodeResponse(
        id=access_code.id,
        code=access_code.code,
        code_type=access_code.code_type,
        is_active=access_code.is_active,
        current_uses=access_code.current_uses,
        max_uses=access_code.max_uses,
        expires_at=access_code.expires_at,
        state=access_code.state().value,
    )


@router.post("/{code}/consume", response_model=ConsumeResult)
async def consume_access_code(
    request: Request,
    code: str,
    principal: OptionalPrincipal,
    db: DbSession,
):
    """Use one of the code's remaining uses. 409 if it is no longer valid."""
    service = AccessCodeService(db)
    return await service.consume(
        code,
        principal_id=principal.id if principal else None,
        source_ip=get_client_ip(request),
    )


@router.post("/{code}/deactivate", response_model=AccessCodeStatusResponse)
async def deactivate_access_code(
    code: str,
    principal: CurrentPrincipal,
    db: DbSession,
):
    """Deactivate a code permanently. Admin only."""
    service = AccessCodeService(db)
    access_code = await service.deactivate(principal, code)
    return _status(access_code)


@router.post("/{code}/reset", response_model=AccessCodeStatusResponse)
async def reset_access_code(
    code: str,
    principal: CurrentPrincipal,
    db: DbSession,
):
    """Return a used code to unused. Admin only."""
    service = AccessCodeService(db)
    access_code = await service.reset(principal, code)
    return _status(access_code)
