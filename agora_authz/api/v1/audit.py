"""
Security event endpoints.
"""

import uuid
from typing import List

from fastapi import APIRouter, Query, Request, status

from agora_authz.api.deps import CurrentPrincipal, DbSession, get_client_ip
from agora_authz.kernel.events.event_store import SecurityEventLog
from agora_authz.kernel.identity.identity_service import IdentityService
from agora_authz.kernel.permissions.policy import Action, ResourceType
from agora_authz.kernel.permissions.policy_evaluator import PolicyEvaluator
from agora_authz.schemas.authz import AuditEventCreate, AuditEventResponse

router = APIRouter()


@router.post("/events", response_model=AuditEventResponse, status_code=status.HTTP_201_CREATED)
async def record_event(
    request: Request,
    data: AuditEventCreate,
    principal: CurrentPrincipal,
    db: DbSession,
):
    """Record a security event. Non-admins may record custom events only."""
    identity_service = IdentityService(db)
    event = await identity_service.audit_event(
        data.event_type,
        principal,
        resource_type=data.resource_type,
        resource_id=data.resource_id,
        details=data.details,
        risk_level=data.risk_level,
        ip_address=get_client_ip(request),
    )
    await db.flush()
    return AuditEventResponse.model_validate(event)


@router.get("/principals/{principal_id}/events", response_model=List[AuditEventResponse])
async def list_principal_events(
    principal_id: uuid.UUID,
    principal: CurrentPrincipal,
    db: DbSession,
    high_risk_only: bool = False,
    limit: int = Query(100, ge=1, le=500),
):
    """Recent events triggered by a principal, newest first. Admin only."""
    decision = await PolicyEvaluator(db).evaluate(principal, Action.READ, ResourceType.SECURITY_EVENT, None)
    decision.raise_for_deny()

    events = await SecurityEventLog(db).recent_for_principal(
        principal_id,
        high_risk_only=high_risk_only,
        limit=limit,
    )
    return [AuditEventResponse.model_validate(e) for e in events]
