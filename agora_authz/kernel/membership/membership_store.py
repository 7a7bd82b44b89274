"""
Deliberations and their participant rows, behind the policy evaluator.
"""

import uuid
from typing import List, Optional, Union

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from agora_authz.kernel.errors import ConstraintViolation, Forbidden
from agora_authz.kernel.events.event_store import SecurityEventLog
from agora_authz.kernel.models.deliberation import (
    STATUS_ORDER,
    Deliberation,
    DeliberationStatus,
    DeliberationVisibility,
    Participant,
    ParticipantRole,
)
from agora_authz.kernel.models.principal import Principal
from agora_authz.kernel.models.security_event import SecurityEventType
from agora_authz.kernel.permissions.policy import REASON_FORBIDDEN, Action, ResourceType
from agora_authz.kernel.permissions.policy_evaluator import PolicyEvaluator


class MembershipStore:
    """
    Guarded access to deliberations and participants.

    list_participants is the guarded read path for participant rows.
    Policy predicates must never call it; they use TrustedLookups.
    """

    def __init__(self, session: AsyncSession, evaluator: Optional[PolicyEvaluator] = None):
        self.session = session
        self.evaluator = evaluator or PolicyEvaluator(session)
        self.audit = SecurityEventLog(session)

    async def create_deliberation(
        self,
        requester: Principal,
        title: str,
        visibility: Union[DeliberationVisibility, str] = DeliberationVisibility.PRIVATE,
    ) -> Deliberation:
        """Admin only. The requester facilitates; the deliberation starts as a draft."""
        decision = await self.evaluator.evaluate(requester, Action.CREATE, ResourceType.DELIBERATION, None)
        decision.raise_for_deny()

        visibility = DeliberationVisibility(visibility)
        deliberation = Deliberation(
            title=title.strip(),
            visibility=visibility.value,
            status=DeliberationStatus.DRAFT.value,
            facilitator_id=requester.id,
        )
        self.session.add(deliberation)
        await self.session.flush()

        self.session.add(Participant(
            deliberation_id=deliberation.id,
            principal_id=requester.id,
            role=ParticipantRole.FACILITATOR.value,
        ))
        self.audit.record(
            SecurityEventType.DELIBERATION_CREATED,
            principal_id=requester.id,
            resource_type=ResourceType.DELIBERATION.value,
            resource_id=deliberation.id,
            details={"visibility": visibility.value},
        )
        await self.session.flush()
        return deliberation

    async def transition_status(
        self,
        requester: Principal,
        deliberation_id: uuid.UUID,
        new_status: Union[DeliberationStatus, str],
    ) -> Deliberation:
        """Facilitator or admin; draft -> active -> concluded -> archived, forward only."""
        decision = await self.evaluator.evaluate(requester, Action.UPDATE, ResourceType.DELIBERATION, deliberation_id)
        decision.raise_for_deny()

        deliberation = await self.session.get(Deliberation, deliberation_id)
        if deliberation is None:
            raise Forbidden(REASON_FORBIDDEN)

        new_status = DeliberationStatus(new_status)
        current = DeliberationStatus(deliberation.status)
        if STATUS_ORDER.index(new_status) <= STATUS_ORDER.index(current):
            raise ConstraintViolation(f"Cannot move deliberation from {current.value} to {new_status.value}")

        deliberation.status = new_status.value
        self.audit.record(
            SecurityEventType.DELIBERATION_STATUS_CHANGED,
            principal_id=requester.id,
            resource_type=ResourceType.DELIBERATION.value,
            resource_id=deliberation.id,
            details={"previous_status": current.value, "new_status": new_status.value},
        )
        await self.session.flush()
        return deliberation

    async def join(
        self,
        principal: Principal,
        deliberation_id: uuid.UUID,
        role: Union[ParticipantRole, str] = ParticipantRole.PARTICIPANT,
    ) -> Participant:
        """Add principal to a deliberation. Joining twice returns the existing row."""
        decision = await self.evaluator.evaluate(principal, Action.CREATE, ResourceType.PARTICIPANT, deliberation_id)
        decision.raise_for_deny()

        existing = await self.session.scalar(
            select(Participant).where(
                and_(
                    Participant.deliberation_id == deliberation_id,
                    Participant.principal_id == principal.id,
                )
            )
        )
        if existing is not None:
            return existing

        participant = Participant(
            deliberation_id=deliberation_id,
            principal_id=principal.id,
            role=ParticipantRole(role).value,
        )
        self.session.add(participant)
        await self.session.flush()

        self.audit.record(
            SecurityEventType.PARTICIPANT_JOINED,
            principal_id=principal.id,
            resource_type=ResourceType.PARTICIPANT.value,
            resource_id=participant.id,
            details={"deliberation_id": deliberation_id, "role": participant.role},
        )
        return participant

    async def remove_participant(self, requester: Principal, participant_id: uuid.UUID) -> None:
        """Leave (own row) or remove someone (facilitator/admin)."""
        decision = await self.evaluator.evaluate(requester, Action.DELETE, ResourceType.PARTICIPANT, participant_id)
        decision.raise_for_deny()

        participant = await self.session.get(Participant, participant_id)
        if participant is None:
            raise Forbidden(REASON_FORBIDDEN)

        self.audit.record(
            SecurityEventType.PARTICIPANT_REMOVED,
            principal_id=requester.id,
            resource_type=ResourceType.PARTICIPANT.value,
            resource_id=participant.id,
            details={
                "deliberation_id": participant.deliberation_id,
                "removed_principal_id": participant.principal_id,
            },
        )
        await self.session.delete(participant)
        await self.session.flush()

    async def list_participants(self, principal: Principal, deliberation_id: uuid.UUID) -> List[Participant]:
        """
        Participant rows of a deliberation that principal may read.

        Raises:
            PolicyRecursionError: called while a participant policy is being evaluated
        """
        self.evaluator.ensure_not_evaluating(ResourceType.PARTICIPANT)

        result = await self.session.execute(
            select(Participant)
            .where(Participant.deliberation_id == deliberation_id)
            .order_by(Participant.created_at)
        )
        visible = []
        for participant in result.scalars().all():
            decision = await self.evaluator.evaluate(principal, Action.READ, ResourceType.PARTICIPANT, participant.id)
            if decision.allowed:
                visible.append(participant)
        return visible
