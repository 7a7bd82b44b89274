"""
Trusted lookups: raw membership and role reads.

These are the only reads a policy predicate may perform about the
principal's relationship to a deliberation. They go straight to the
underlying tables and apply no visibility filtering and no other
authorization logic, so calling them from inside a predicate can never
re-enter that predicate.

This module must not import anything from agora_authz.kernel.permissions.
"""

import uuid
from typing import List

from sqlalchemy import and_, exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from agora_authz.kernel.models.deliberation import Deliberation, Participant
from agora_authz.kernel.models.principal import Principal, PrincipalRole


class TrustedLookups:
    """Elevated, side-effect-free membership/role checks."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def is_participant(self, deliberation_id: uuid.UUID, principal_id: uuid.UUID) -> bool:
        query = select(
            exists().where(
                and_(
                    Participant.deliberation_id == deliberation_id,
                    Participant.principal_id == principal_id,
                )
            )
        )
        result = await self.session.execute(query)
        return bool(result.scalar())

    async def is_facilitator(self, deliberation_id: uuid.UUID, principal_id: uuid.UUID) -> bool:
        query = select(
            exists().where(
                and_(
                    Deliberation.id == deliberation_id,
                    Deliberation.facilitator_id == principal_id,
                )
            )
        )
        result = await self.session.execute(query)
        return bool(result.scalar())

    async def is_admin(self, principal_id: uuid.UUID) -> bool:
        query = select(
            exists().where(
                and_(
                    Principal.id == principal_id,
                    Principal.role == PrincipalRole.ADMIN.value,
                )
            )
        )
        result = await self.session.execute(query)
        return bool(result.scalar())

    async def other_active_admin_ids(
        self,
        principal_id: uuid.UUID,
        for_update: bool = False,
    ) -> List[uuid.UUID]:
        """
        Non-archived admins other than principal_id.

        With for_update every active admin row, principal_id's included,
        stays locked until the transaction ends, so two admins demoting
        each other serialize and the second sees the first's change.
        """
        query = select(Principal.id).where(
            and_(
                Principal.role == PrincipalRole.ADMIN.value,
                Principal.archived.is_(False),
            )
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return [row[0] for row in result.all() if row[0] != principal_id]
