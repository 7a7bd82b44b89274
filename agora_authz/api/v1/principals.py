"""
Principal endpoints: profile, role and archive state.
"""

import uuid

from fastapi import APIRouter, Request

from agora_authz.api.deps import CurrentPrincipal, DbSession, get_client_ip
from agora_authz.kernel.identity.identity_service import IdentityService
from agora_authz.schemas.authz import DecisionResponse
from agora_authz.schemas.principal import (
    ArchiveRequest,
    PrincipalProfileUpdate,
    PrincipalResponse,
    RoleChangeRequest,
)

router = APIRouter()


@router.get("/me", response_model=PrincipalResponse)
async def get_me(principal: CurrentPrincipal):
    """Get the calling principal."""
    return PrincipalResponse.model_validate(principal)


@router.patch("/me", response_model=PrincipalResponse)
async def update_me(
    data: PrincipalProfileUpdate,
    principal: CurrentPrincipal,
    db: DbSession,
):
    """Update the calling principal's own non-role fields."""
    identity_service = IdentityService(db)
    updated = await identity_service.update_profile(
        principal,
        principal.id,
        display_name=data.display_name,
        role=data.role,
    )
    return PrincipalResponse.model_validate(updated)


@router.put("/{principal_id}/role", response_model=DecisionResponse)
async def change_role(
    request: Request,
    principal_id: uuid.UUID,
    data: RoleChangeRequest,
    principal: CurrentPrincipal,
    db: DbSession,
):
    """
    Change a principal's role. Admin only.

    A refused change is answered with 403 (not an admin) or 400 (would
    leave no admins); the refusal itself is kept in the security log.
    """
    identity_service = IdentityService(db)
    decision = await identity_service.change_role(
        principal,
        principal_id,
        data.role,
        ip_address=get_client_ip(request),
    )
    if not decision.allowed:
        await db.commit()
        decision.raise_for_deny()
    return DecisionResponse.from_decision(decision)


@router.post("/{principal_id}/archive", response_model=PrincipalResponse)
async def archive_principal(
    request: Request,
    principal_id: uuid.UUID,
    principal: CurrentPrincipal,
    db: DbSession,
    data: ArchiveRequest = ArchiveRequest(),
):
    """Archive a principal. Admin only; the last active admin cannot be archived."""
    identity_service = IdentityService(db)
    archived = await identity_service.archive_principal(
        principal,
        principal_id,
        reason=data.reason,
        ip_address=get_client_ip(request),
    )
    return PrincipalResponse.model_validate(archived)


@router.post("/{principal_id}/unarchive", response_model=PrincipalResponse)
async def unarchive_principal(
    request: Request,
    principal_id: uuid.UUID,
    principal: CurrentPrincipal,
    db: DbSession,
):
    """Restore an archived principal. Admin only."""
    identity_service = IdentityService(db)
    restored = await identity_service.unarchive_principal(
        principal,
        principal_id,
        ip_address=get_client_ip(request),
    )
    return PrincipalResponse.model_validate(restored)
