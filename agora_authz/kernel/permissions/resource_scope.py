"""
Resolve the access-relevant scope of a resource.

Reads only the scope columns (tenant, owner, default flag) of the target
row. No policy is applied here and the guarded read paths are never used.
"""

import uuid
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agora_authz.kernel.models import (
    AgentConfiguration,
    Deliberation,
    GraphNode,
    GraphRelationship,
    Message,
    Participant,
    Principal,
)
from agora_authz.kernel.permissions.policy import Action, ResourceType, TENANT_SCOPED

ResourceId = Union[uuid.UUID, str, None]


@dataclass(frozen=True)
class ResourceScope:
    exists: bool
    deliberation_id: Optional[uuid.UUID] = None
    owner_id: Optional[uuid.UUID] = None
    # Default agent configurations and similar tenant-independent rows
    globally_public: bool = False
    # Owning deliberation is public AND active
    tenant_public: bool = False


MISSING = ResourceScope(exists=False)
UNSCOPED = ResourceScope(exists=True)


def _as_uuid(value: ResourceId) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    if value is None:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def owner_from_object_path(path: str) -> Optional[uuid.UUID]:
    """Object paths are "<owner-id>/<name>"; the first folder is the owner."""
    folder, sep, name = path.strip("/").partition("/")
    if not sep or not name:
        return None
    return _as_uuid(folder)


class ResourceScopeLoader:
    """Loads ResourceScope for (resource_type, resource_id)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load(
        self,
        resource_type: ResourceType,
        resource_id: ResourceId,
        action: Action = Action.READ,
    ) -> ResourceScope:
        if resource_type == ResourceType.STORED_FILE:
            owner = owner_from_object_path(str(resource_id or ""))
            return ResourceScope(exists=True, owner_id=owner) if owner else MISSING

        if resource_type in (ResourceType.ACCESS_CODE, ResourceType.SECURITY_EVENT):
            return UNSCOPED

        rid = _as_uuid(resource_id)
        if rid is None:
            return MISSING

        # Creating a tenant-scoped row: resource_id names the deliberation
        if action == Action.CREATE and resource_type in TENANT_SCOPED and resource_type != ResourceType.DELIBERATION:
            return await self._tenant_scope(rid)

        if resource_type == ResourceType.PROFILE:
            found = await self.session.scalar(select(Principal.id).where(Principal.id == rid))
            return ResourceScope(exists=True, owner_id=found) if found else MISSING

        if resource_type == ResourceType.DELIBERATION:
            return await self._tenant_scope(rid)

        if resource_type == ResourceType.PARTICIPANT:
            return await self._row_scope(Participant.deliberation_id, Participant.principal_id, Participant.id, rid)

        if resource_type == ResourceType.MESSAGE:
            return await self._row_scope(Message.deliberation_id, Message.author_id, Message.id, rid)

        if resource_type == ResourceType.GRAPH_NODE:
            return await self._row_scope(GraphNode.deliberation_id, GraphNode.created_by, GraphNode.id, rid)

        if resource_type == ResourceType.GRAPH_RELATIONSHIP:
            return await self._row_scope(
                GraphRelationship.deliberation_id, GraphRelationship.created_by, GraphRelationship.id, rid
            )

        if resource_type == ResourceType.AGENT_CONFIGURATION:
            row = (
                await self.session.execute(
                    select(
                        AgentConfiguration.deliberation_id,
                        AgentConfiguration.created_by,
                        AgentConfiguration.is_default,
                    ).where(AgentConfiguration.id == rid)
                )
            ).one_or_none()
            if row is None:
                return MISSING
            deliberation_id, owner_id, is_default = row
            if deliberation_id is None:
                return ResourceScope(exists=True, owner_id=owner_id, globally_public=bool(is_default))
            tenant = await self._tenant_scope(deliberation_id)
            return ResourceScope(
                exists=True,
                deliberation_id=deliberation_id,
                owner_id=owner_id,
                globally_public=bool(is_default),
                tenant_public=tenant.tenant_public,
            )

        return MISSING

    async def _tenant_scope(self, deliberation_id: uuid.UUID) -> ResourceScope:
        deliberation = await self.session.get(Deliberation, deliberation_id)
        if deliberation is None:
            return MISSING
        return ResourceScope(
            exists=True,
            deliberation_id=deliberation.id,
            tenant_public=deliberation.is_publicly_visible,
        )

    async def _row_scope(self, tenant_col, owner_col, id_col, rid: uuid.UUID) -> ResourceScope:
        row = (await self.session.execute(select(tenant_col, owner_col).where(id_col == rid))).one_or_none()
        if row is None:
            return MISSING
        deliberation_id, owner_id = row
        tenant = await self._tenant_scope(deliberation_id)
        return ResourceScope(
            exists=True,
            deliberation_id=deliberation_id,
            owner_id=owner_id,
            tenant_public=tenant.tenant_public,
        )
