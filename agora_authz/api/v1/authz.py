"""
Policy evaluation endpoint.
"""

import uuid

from fastapi import APIRouter, HTTPException, status

from agora_authz.api.deps import CurrentPrincipal, DbSession
from agora_authz.kernel.permissions.policy import Action
from agora_authz.kernel.permissions.policy_evaluator import PolicyEvaluator
from agora_authz.schemas.authz import DecisionResponse, EvaluateRequest

router = APIRouter()


@router.post("/evaluate", response_model=DecisionResponse)
async def evaluate(
    data: EvaluateRequest,
    principal: CurrentPrincipal,
    db: DbSession,
):
    """
    Decide whether the calling principal may perform an action.

    Deny is a normal answer (200 with allowed=false), not an error.
    """
    if data.action == Action.UPDATE_ROLE:
        if data.new_role is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="new_role is required for update_role",
            )
        try:
            uuid.UUID(str(data.resource_id))
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="resource_id must be a principal ID for update_role",
            )

    evaluator = PolicyEvaluator(db)
    decision = await evaluator.evaluate(
        principal,
        data.action,
        data.resource_type,
        data.resource_id,
        new_role=data.new_role,
    )
    return DecisionResponse.from_decision(decision)
