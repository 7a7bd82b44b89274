"""
Policy evaluator: one Allow/Deny per (principal, action, resource).

Rules, first match wins:
1. archived principal            -> Deny
2. admin                         -> Allow (role changes: last-admin guard)
3. globally public resource      -> Allow for reads
4. participant / facilitator     -> Allow for that standing's actions
5. owner of the record           -> Allow for owner actions
6. otherwise                     -> Deny

Predicates only read through TrustedLookups and ResourceScopeLoader.
While a resource type is being evaluated, its guarded read path refuses
to run (see ensure_not_evaluating), which turns an accidental
self-referential check into an immediate PolicyRecursionError instead of
unbounded recursion.
"""

import uuid
from contextlib import contextmanager
from typing import Iterator, Optional, Set, Union

from sqlalchemy.ext.asyncio import AsyncSession

from agora_authz.kernel.errors import PolicyRecursionError
from agora_authz.kernel.models.principal import Principal, PrincipalRole
from agora_authz.kernel.permissions.policy import (
    Action,
    Decision,
    FACILITATOR_ACTIONS,
    OWNER_ACTIONS,
    PARTICIPANT_ACTIONS,
    REASON_ADMIN_ONLY,
    REASON_ARCHIVED,
    REASON_FORBIDDEN,
    REASON_LAST_ADMIN,
    REASON_UNAUTHENTICATED,
    ResourceType,
    Violation,
)
from agora_authz.kernel.permissions.resource_scope import ResourceId, ResourceScopeLoader
from agora_authz.kernel.trusted.lookups import TrustedLookups
from agora_authz.logging_config import get_logger

logger = get_logger(__name__)


class PolicyEvaluator:
    """
    Request-scoped evaluator. Holds no decision cache; repeated calls
    against the same database state return the same Decision.
    """

    def __init__(
        self,
        session: AsyncSession,
        lookups: Optional[TrustedLookups] = None,
        scopes: Optional[ResourceScopeLoader] = None,
    ):
        self.session = session
        self.lookups = lookups or TrustedLookups(session)
        self.scopes = scopes or ResourceScopeLoader(session)
        self._evaluating: Set[ResourceType] = set()

    async def evaluate(
        self,
        principal: Optional[Principal],
        action: Union[Action, str],
        resource_type: Union[ResourceType, str],
        resource_id: ResourceId,
        *,
        new_role: Union[PrincipalRole, str, None] = None,
    ) -> Decision:
        """
        Decide whether principal may perform action on the resource.

        For Action.CREATE on tenant-scoped types, resource_id is the
        deliberation the new row will belong to. For STORED_FILE it is
        the object path. For UPDATE_ROLE it is the target principal and
        new_role must be given.
        """
        action = Action(action)
        resource_type = ResourceType(resource_type)

        with self._evaluating_type(resource_type):
            if action == Action.UPDATE_ROLE:
                decision = await self._role_change(principal, resource_id, new_role)
            else:
                decision = await self._decide(principal, action, resource_type, resource_id)

        if not decision.allowed:
            logger.info(
                "Access denied",
                extra={
                    "principal_id": str(principal.id) if principal else None,
                    "action": action.value,
                    "resource_type": resource_type.value,
                    "resource_id": str(resource_id) if resource_id is not None else None,
                    "reason": decision.reason,
                },
            )
        return decision

    def ensure_not_evaluating(self, resource_type: Union[ResourceType, str]) -> None:
        """Guarded read paths call this before touching their table."""
        resource_type = ResourceType(resource_type)
        if resource_type in self._evaluating:
            raise PolicyRecursionError(
                f"guarded read of {resource_type.value} while evaluating {resource_type.value} policy"
            )

    @contextmanager
    def _evaluating_type(self, resource_type: ResourceType) -> Iterator[None]:
        self.ensure_not_evaluating(resource_type)
        self._evaluating.add(resource_type)
        try:
            yield
        finally:
            self._evaluating.discard(resource_type)

    async def _decide(
        self,
        principal: Optional[Principal],
        action: Action,
        resource_type: ResourceType,
        resource_id: ResourceId,
    ) -> Decision:
        if principal is None:
            return Decision.deny(REASON_UNAUTHENTICATED)

        if principal.archived:
            return Decision.deny(REASON_ARCHIVED)

        if await self.lookups.is_admin(principal.id):
            return Decision.allow("admin_override")

        scope = await self.scopes.load(resource_type, resource_id, action)
        # Missing and hidden resources are indistinguishable to the caller
        if not scope.exists:
            logger.debug("Resource not found", extra={"resource_type": resource_type.value})
            return Decision.deny(REASON_FORBIDDEN)

        if action == Action.READ and (scope.globally_public or scope.tenant_public):
            return Decision.allow("public_resource")

        # Open enrollment: anyone may join a public, active deliberation
        if (
            resource_type == ResourceType.PARTICIPANT
            and action == Action.CREATE
            and scope.tenant_public
        ):
            return Decision.allow("open_enrollment")

        if scope.deliberation_id is not None:
            if action in FACILITATOR_ACTIONS.get(resource_type, ()) and await self.lookups.is_facilitator(
                scope.deliberation_id, principal.id
            ):
                return Decision.allow("facilitator")
            if action in PARTICIPANT_ACTIONS.get(resource_type, ()) and await self.lookups.is_participant(
                scope.deliberation_id, principal.id
            ):
                return Decision.allow("participant")

        if scope.owner_id is not None and scope.owner_id == principal.id:
            if action in OWNER_ACTIONS.get(resource_type, ()):
                return Decision.allow("owner")

        return Decision.deny(REASON_FORBIDDEN)

    async def _role_change(
        self,
        requester: Optional[Principal],
        target_id: ResourceId,
        new_role: Union[PrincipalRole, str, None],
    ) -> Decision:
        if requester is None:
            return Decision.deny(REASON_UNAUTHENTICATED)
        if requester.archived:
            return Decision.deny(REASON_ARCHIVED)
        if not await self.lookups.is_admin(requester.id):
            return Decision.deny(REASON_ADMIN_ONLY)
        if new_role is None:
            raise ValueError("new_role is required for role changes")

        new_role = PrincipalRole(new_role)
        target = target_id if isinstance(target_id, uuid.UUID) else uuid.UUID(str(target_id))

        if new_role != PrincipalRole.ADMIN and await self.lookups.is_admin(target):
            others = await self.lookups.other_active_admin_ids(target, for_update=True)
            if len(others) < 1:
                return Decision.deny(REASON_LAST_ADMIN, violation=Violation.CONSTRAINT)

        return Decision.allow("admin")
