"""
Identity service for principal management operations.
"""

import uuid
from typing import Any, Dict, Optional, Tuple, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agora_authz.config import Settings, get_settings
from agora_authz.kernel.access_codes.access_code_service import AccessCodeService
from agora_authz.kernel.access_codes.results import ValidationReason
from agora_authz.kernel.errors import ConstraintViolation, Forbidden, RateLimited, Unauthenticated
from agora_authz.kernel.events.event_store import SecurityEventLog
from agora_authz.kernel.identity.jwt import JWTManager, SessionToken
from agora_authz.kernel.models.access_code import AccessCode, AccessCodeType
from agora_authz.kernel.models.base import utcnow
from agora_authz.kernel.models.principal import Principal, PrincipalRole
from agora_authz.kernel.models.security_event import RiskLevel, SecurityEvent, SecurityEventType
from agora_authz.kernel.permissions.policy import (
    REASON_ARCHIVED,
    REASON_FORBIDDEN,
    REASON_LAST_ADMIN,
    Action,
    Decision,
    ResourceType,
)
from agora_authz.kernel.permissions.policy_evaluator import PolicyEvaluator
from agora_authz.logging_config import get_logger

logger = get_logger(__name__)

PROFILE = ResourceType.PROFILE.value


class IdentityService:
    """
    Service for principal identity operations.

    Handles access-code sign-in, profile updates, role changes and
    archiving. Every method works in the caller's transaction.
    """

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()
        self.jwt_manager = JWTManager(self.settings)
        self.audit = SecurityEventLog(session)
        self.evaluator = PolicyEvaluator(session)

    async def get_principal(self, principal_id: uuid.UUID) -> Optional[Principal]:
        """Get a principal by ID."""
        query = (
            select(Principal)
            .where(Principal.id == principal_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_access_code(self, normalized_code: str) -> Optional[AccessCode]:
        """Get an access code by its normalized value."""
        query = (
            select(AccessCode)
            .where(AccessCode.code == normalized_code)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def create_principal(
        self,
        role: Union[PrincipalRole, str] = PrincipalRole.USER,
        display_name: Optional[str] = None,
        principal_id: Optional[uuid.UUID] = None,
        source: str = "access_code",
        ip_address: Optional[str] = None,
    ) -> Principal:
        role = PrincipalRole(role)
        principal = Principal(display_name=display_name, role=role.value)
        if principal_id is not None:
            principal.id = principal_id

        self.session.add(principal)
        await self.session.flush()

        self.audit.record(
            SecurityEventType.PRINCIPAL_CREATED,
            principal_id=principal.id,
            resource_type=PROFILE,
            resource_id=principal.id,
            details={"role": role.value, "source": source},
            risk_level=RiskLevel.MEDIUM if role == PrincipalRole.ADMIN else RiskLevel.LOW,
            ip_address=ip_address,
        )
        return principal

    async def get_or_create_principal(
        self,
        principal_id: uuid.UUID,
        display_name: Optional[str] = None,
        source: str = "federated",
    ) -> Tuple[Principal, bool]:
        """
        Return (principal, created). New principals always start as users.
        """
        principal = await self.get_principal(principal_id)
        if principal is not None:
            return principal, False

        principal = await self.create_principal(
            role=PrincipalRole.USER,
            display_name=display_name,
            principal_id=principal_id,
            source=source,
        )
        logger.info("Principal provisioned", extra={"principal_id": str(principal.id), "source": source})
        return principal, True

    async def sign_in_with_access_code(
        self,
        code: Optional[str],
        source_ip: Optional[str] = None,
    ) -> Tuple[Principal, SessionToken]:
        """
        Exchange an access code for its principal and a session token.

        The code is validated, then consumed. The first sign-in creates a
        principal with the role the code grants and binds it to the code;
        every later sign-in with the same code returns that principal.

        Raises:
            RateLimited: the source is blocked
            Unauthenticated: the code failed validation (reason attached)
            Forbidden: the code's holder is archived
            CodeNoLongerValid: the code was used up between validate and consume
        """
        codes = AccessCodeService(self.session, self.settings)

        result = await codes.validate(code, source_ip)
        if not result.valid:
            if result.reason == ValidationReason.RATE_LIMITED:
                raise RateLimited(result.blocked_until)
            raise Unauthenticated("Access code rejected", reason=result.reason)

        access_code = await codes.get_by_code(code)
        if access_code.used_by is not None:
            await self._active_holder(access_code.used_by, source_ip)

        consumed = await codes.consume(code, source_ip=source_ip)

        # consume() holds the code row, so used_by read now is settled
        access_code = await codes.get_by_code(code)
        if access_code.used_by is not None:
            principal = await self._active_holder(access_code.used_by, source_ip)
            logger.info("Returning access-code holder", extra={"principal_id": str(principal.id)})
        else:
            role = PrincipalRole.ADMIN if consumed.code_type == AccessCodeType.ADMIN.value else PrincipalRole.USER
            principal = await self.create_principal(role=role, source="access_code", ip_address=source_ip)
            await codes.bind_principal(access_code.id, principal.id)

        token = self.jwt_manager.create_session_token(principal.id, principal.role)
        return principal, token

    async def _active_holder(self, principal_id: uuid.UUID, source_ip: Optional[str]) -> Principal:
        principal = await self.get_principal(principal_id)
        if principal is None or principal.archived:
            self.audit.record(
                SecurityEventType.ACCESS_DENIED,
                principal_id=principal_id,
                resource_type=PROFILE,
                resource_id=principal_id,
                details={"reason": REASON_ARCHIVED, "source": "access_code"},
                risk_level=RiskLevel.MEDIUM,
                ip_address=source_ip,
            )
            raise Forbidden("Access code holder is archived", reason=REASON_ARCHIVED)
        return principal

    async def update_profile(
        self,
        requester: Principal,
        target_id: uuid.UUID,
        display_name: Optional[str] = None,
        role: Union[PrincipalRole, str, None] = None,
    ) -> Principal:
        """
        Self-service update of non-role fields.

        A role equal to the current one is accepted as a no-op; anything
        else must go through change_role.
        """
        decision = await self.evaluator.evaluate(requester, Action.UPDATE, ResourceType.PROFILE, target_id)
        decision.raise_for_deny()

        target = await self.get_principal(target_id)
        if target is None:
            raise Forbidden(REASON_FORBIDDEN)

        if role is not None and PrincipalRole(role).value != target.role:
            raise Forbidden("Role changes require an administrator")

        changes: Dict[str, Any] = {}
        if display_name is not None:
            target.display_name = display_name.strip()
            changes["display_name"] = target.display_name

        if changes:
            self.audit.record(
                SecurityEventType.PRINCIPAL_UPDATED,
                principal_id=requester.id,
                resource_type=PROFILE,
                resource_id=target.id,
                details=changes,
            )
            await self.session.flush()

        return target

    async def change_role(
        self,
        requester: Principal,
        target_id: uuid.UUID,
        new_role: Union[PrincipalRole, str],
        ip_address: Optional[str] = None,
    ) -> Decision:
        """
        Change a principal's platform role.

        Returns the Decision. On Deny nothing changes and the refusal is
        recorded as a high-risk event; a change that would leave no active
        admin is recorded under its own event type.
        """
        new_role = PrincipalRole(new_role)
        decision = await self.evaluator.evaluate(
            requester,
            Action.UPDATE_ROLE,
            ResourceType.PROFILE,
            target_id,
            new_role=new_role,
        )

        if not decision.allowed:
            event_type = (
                SecurityEventType.ADMIN_SELF_DEMOTION_BLOCKED
                if decision.reason == REASON_LAST_ADMIN
                else SecurityEventType.ROLE_CHANGE_DENIED
            )
            self.audit.record(
                event_type,
                principal_id=requester.id if requester else None,
                resource_type=PROFILE,
                resource_id=target_id,
                details={"new_role": new_role.value, "reason": decision.reason},
                risk_level=RiskLevel.HIGH,
                ip_address=ip_address,
            )
            return decision

        target = await self.get_principal(target_id)
        if target is None:
            return Decision.deny(REASON_FORBIDDEN)

        previous_role = target.role
        if previous_role == new_role.value:
            return decision

        target.role = new_role.value
        self.audit.record(
            SecurityEventType.ROLE_CHANGED,
            principal_id=requester.id,
            resource_type=PROFILE,
            resource_id=target.id,
            details={"previous_role": previous_role, "new_role": new_role.value},
            risk_level=RiskLevel.HIGH,
            ip_address=ip_address,
        )
        await self.session.flush()
        logger.info(
            "Role changed",
            extra={"target_id": str(target.id), "previous_role": previous_role, "new_role": new_role.value},
        )
        return decision

    async def archive_principal(
        self,
        requester: Principal,
        target_id: uuid.UUID,
        reason: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Principal:
        """
        Archive a principal. Admin only.

        Raises:
            Forbidden: requester is not an active admin
            ConstraintViolation: target is the last active admin
        """
        target = await self._get_for_admin(requester, target_id)
        if target.archived:
            return target

        if target.is_admin:
            others = await self.evaluator.lookups.other_active_admin_ids(target.id, for_update=True)
            if not others:
                raise ConstraintViolation(REASON_LAST_ADMIN)

        target.archived = True
        target.archived_by = requester.id
        target.archived_at = utcnow()
        target.archive_reason = reason

        self.audit.record(
            SecurityEventType.PRINCIPAL_ARCHIVED,
            principal_id=requester.id,
            resource_type=PROFILE,
            resource_id=target.id,
            details={"reason": reason},
            risk_level=RiskLevel.HIGH,
            ip_address=ip_address,
        )
        await self.session.flush()
        return target

    async def unarchive_principal(
        self,
        requester: Principal,
        target_id: uuid.UUID,
        ip_address: Optional[str] = None,
    ) -> Principal:
        """Restore an archived principal. Admin only."""
        target = await self._get_for_admin(requester, target_id)
        if not target.archived:
            return target

        target.archived = False
        target.archived_by = None
        target.archived_at = None
        target.archive_reason = None

        self.audit.record(
            SecurityEventType.PRINCIPAL_UNARCHIVED,
            principal_id=requester.id,
            resource_type=PROFILE,
            resource_id=target.id,
            risk_level=RiskLevel.HIGH,
            ip_address=ip_address,
        )
        await self.session.flush()
        return target

    async def audit_event(
        self,
        event_type: Union[SecurityEventType, str],
        principal: Optional[Principal],
        resource_type: Optional[str] = None,
        resource_id: Union[uuid.UUID, str, None] = None,
        details: Optional[Dict[str, Any]] = None,
        risk_level: Union[RiskLevel, str] = RiskLevel.LOW,
        ip_address: Optional[str] = None,
    ) -> SecurityEvent:
        """
        Record an event on behalf of a principal.

        Only admins may record built-in event types; everyone else may
        record custom events only.
        """
        event_type = SecurityEventType(event_type)
        if event_type != SecurityEventType.CUSTOM:
            if principal is None or principal.archived or not await self.evaluator.lookups.is_admin(principal.id):
                raise Forbidden("Only administrators can record built-in event types")

        return self.audit.record(
            event_type,
            principal_id=principal.id if principal else None,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
            risk_level=risk_level,
            ip_address=ip_address,
        )

    async def _get_for_admin(self, requester: Principal, target_id: uuid.UUID) -> Principal:
        if requester.archived or not await self.evaluator.lookups.is_admin(requester.id):
            raise Forbidden("Only administrators can archive principals")
        target = await self.get_principal(target_id)
        if target is None:
            raise ConstraintViolation("Principal not found")
        return target
