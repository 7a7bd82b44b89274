"""
Access-code lifecycle: generate, issue, validate, consume, deactivate, reset.
"""

import uuid
from datetime import datetime, timedelta
from typing import Optional, Union

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from agora_authz.config import Settings, get_settings
from agora_authz.kernel.access_codes.generator import generate_candidate, is_acceptable, normalize_code
from agora_authz.kernel.access_codes.results import ConsumeResult, ValidationReason, ValidationResult
from agora_authz.kernel.errors import CodeNoLongerValid, ConstraintViolation, Forbidden, GenerationExhausted
from agora_authz.kernel.events.event_store import SecurityEventLog
from agora_authz.kernel.models.access_code import AccessCode, AccessCodeType
from agora_authz.kernel.models.base import utcnow
from agora_authz.kernel.models.principal import Principal
from agora_authz.kernel.models.security_event import RiskLevel, SecurityEventType
from agora_authz.kernel.permissions.policy import Action, ResourceType
from agora_authz.kernel.permissions.policy_evaluator import PolicyEvaluator
from agora_authz.logging_config import get_logger

logger = get_logger(__name__)

RESOURCE = ResourceType.ACCESS_CODE.value


def mask_code(code: str) -> str:
    return f"{code[:2]}***"


class AccessCodeService:
    """
    Service for access-code operations.

    Nothing here commits. validate() only appends security events;
    consume() is the single write that needs concurrency control and
    does it with one conditional UPDATE (compare-and-swap on
    current_uses), so two racing consumers of the last use cannot both
    succeed on any backend.
    """

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()
        self.audit = SecurityEventLog(session)
        self.evaluator = PolicyEvaluator(session)

    def normalize(self, code: Optional[str]) -> Optional[str]:
        return normalize_code(
            code,
            self.settings.access_code_min_length,
            self.settings.access_code_max_length,
        )

    async def generate(self) -> str:
        """
        Produce a fresh, unused code.

        Raises:
            GenerationExhausted: no acceptable unique code within the attempt cap
        """
        attempts = self.settings.access_code_max_generation_attempts
        for _ in range(attempts):
            candidate = generate_candidate(
                self.settings.access_code_length,
                self.settings.access_code_alphabet,
            )
            if not is_acceptable(candidate):
                continue
            taken = await self.session.scalar(select(AccessCode.id).where(AccessCode.code == candidate))
            if taken is None:
                return candidate

        logger.error("Access code generation exhausted", extra={"attempts": attempts})
        raise GenerationExhausted(f"Unable to generate unique access code after {attempts} attempts")

    async def issue_code(
        self,
        requester: Optional[Principal] = None,
        code_type: Union[AccessCodeType, str] = AccessCodeType.USER,
        max_uses: Optional[int] = 1,
        expires_at: Optional[datetime] = None,
        ip_address: Optional[str] = None,
    ) -> AccessCode:
        """
        Create a new access code.

        Admins may issue any type and limit. Self-service callers (no
        requester, or a non-admin) get exactly one single-use user code.
        """
        code_type = AccessCodeType(code_type)
        if max_uses is not None and max_uses < 1:
            raise ConstraintViolation("max_uses must be at least 1")

        if requester is not None:
            decision = await self.evaluator.evaluate(requester, Action.CREATE, ResourceType.ACCESS_CODE, None)
            is_admin = decision.allowed
        else:
            is_admin = False

        if not is_admin and (code_type != AccessCodeType.USER or max_uses != 1):
            raise Forbidden("Only administrators can issue admin or multi-use codes")

        access_code = AccessCode(
            code=await self.generate(),
            code_type=code_type.value,
            max_uses=max_uses,
            expires_at=expires_at,
            created_by=requester.id if requester else None,
        )
        self.session.add(access_code)
        await self.session.flush()

        self.audit.record(
            SecurityEventType.ACCESS_CODE_ISSUED,
            principal_id=requester.id if requester else None,
            resource_type=RESOURCE,
            resource_id=access_code.id,
            details={
                "code_type": code_type.value,
                "max_uses": max_uses,
                "self_service": not is_admin,
            },
            risk_level=RiskLevel.MEDIUM if code_type == AccessCodeType.ADMIN else RiskLevel.LOW,
            ip_address=ip_address,
        )
        return access_code

    async def validate(self, code: Optional[str], source_ip: Optional[str] = None) -> ValidationResult:
        """
        Check a code without using it.

        Order: brute-force guard, format, exists, active, not expired,
        uses remaining. The first failing check decides the reason.
        Attempt details (code pattern, IP) go to the security log only.
        """
        now = utcnow()

        blocked = await self.source_blocked(source_ip, now)
        if blocked is not None:
            return blocked

        normalized = self.normalize(code)
        if normalized is None:
            # No storage read for malformed input, and nothing tied to a real code
            return self.record_failure(ValidationReason.INVALID_FORMAT, source_ip, {"length": len(code or "")})

        access_code = await self._get(normalized)
        if access_code is None:
            return self.record_failure(
                ValidationReason.CODE_NOT_FOUND,
                source_ip,
                {"attempted_code_pattern": mask_code(normalized)},
            )

        reason = self._rejection(access_code, now)
        if reason is not None:
            return self.record_failure(reason, source_ip, {"code_id": access_code.id}, resource_id=access_code.id)

        self.audit.record(
            SecurityEventType.ACCESS_CODE_VALIDATION_SUCCEEDED,
            resource_type=RESOURCE,
            resource_id=access_code.id,
            details={"code_type": access_code.code_type},
            ip_address=source_ip,
        )
        return ValidationResult(
            valid=True,
            code_type=access_code.code_type,
            remaining_uses=access_code.remaining_uses,
        )

    async def consume(
        self,
        code: Optional[str],
        principal_id: Optional[uuid.UUID] = None,
        source_ip: Optional[str] = None,
    ) -> ConsumeResult:
        """
        Use one of the code's remaining uses.

        Re-validates inside the UPDATE itself, so a validate() that passed
        earlier guarantees nothing.

        Raises:
            ConstraintViolation: malformed code
            CodeNoLongerValid: missing, deactivated, expired or exhausted right now
        """
        normalized = self.normalize(code)
        if normalized is None:
            raise ConstraintViolation("Access code format is invalid", reason=ValidationReason.INVALID_FORMAT)

        now = utcnow()
        stmt = (
            update(AccessCode)
            .where(
                and_(
                    AccessCode.code == normalized,
                    AccessCode.is_active.is_(True),
                    or_(AccessCode.expires_at.is_(None), AccessCode.expires_at > now),
                    or_(AccessCode.max_uses.is_(None), AccessCode.current_uses < AccessCode.max_uses),
                )
            )
            .values(
                current_uses=AccessCode.current_uses + 1,
                is_used=True,
                last_used_at=now,
            )
            .returning(AccessCode.id, AccessCode.code_type, AccessCode.current_uses, AccessCode.max_uses)
            .execution_options(synchronize_session=False)
        )
        row = (await self.session.execute(stmt)).one_or_none()

        if row is None:
            access_code = await self._get(normalized)
            reason = ValidationReason.CODE_NOT_FOUND if access_code is None else self._rejection(access_code, now)
            logger.info("Access code consume refused", extra={"reason": reason})
            raise CodeNoLongerValid("Access code is no longer valid", reason=reason or "no_longer_valid")

        code_id, code_type, current_uses, max_uses = row
        remaining = None if max_uses is None else max_uses - current_uses

        if principal_id is not None:
            await self.bind_principal(code_id, principal_id)

        self.audit.record(
            SecurityEventType.ACCESS_CODE_CONSUMED,
            principal_id=principal_id,
            resource_type=RESOURCE,
            resource_id=code_id,
            details={"code_type": code_type, "remaining_uses": remaining},
            ip_address=source_ip,
        )
        return ConsumeResult(code_type=code_type, remaining_uses=remaining)

    async def bind_principal(self, code_id: uuid.UUID, principal_id: uuid.UUID) -> None:
        """Record the first principal a code signed in; later uses keep it."""
        await self.session.execute(
            update(AccessCode)
            .where(and_(AccessCode.id == code_id, AccessCode.used_by.is_(None)))
            .values(used_by=principal_id)
            .execution_options(synchronize_session=False)
        )

    async def deactivate(self, requester: Principal, code: str) -> AccessCode:
        """Admin-only, terminal."""
        access_code = await self._get_for_admin(requester, code)
        if not access_code.is_active:
            return access_code

        access_code.is_active = False
        self.audit.record(
            SecurityEventType.ACCESS_CODE_DEACTIVATED,
            principal_id=requester.id,
            resource_type=RESOURCE,
            resource_id=access_code.id,
            risk_level=RiskLevel.MEDIUM,
        )
        await self.session.flush()
        return access_code

    async def reset(self, requester: Principal, code: str) -> AccessCode:
        """Admin-only: Used -> Unused. Deactivated codes are immutable."""
        access_code = await self._get_for_admin(requester, code)
        if not access_code.is_active:
            raise ConstraintViolation("Deactivated access codes cannot be changed")

        previous_uses = access_code.current_uses
        access_code.current_uses = 0
        access_code.is_used = False
        access_code.used_by = None
        self.audit.record(
            SecurityEventType.ACCESS_CODE_RESET,
            principal_id=requester.id,
            resource_type=RESOURCE,
            resource_id=access_code.id,
            details={"previous_uses": previous_uses},
            risk_level=RiskLevel.MEDIUM,
        )
        await self.session.flush()
        return access_code

    async def get_by_code(self, code: str) -> Optional[AccessCode]:
        normalized = self.normalize(code)
        if normalized is None:
            return None
        return await self._get(normalized)

    async def _get(self, normalized: str) -> Optional[AccessCode]:
        # populate_existing: consume() updates rows behind the identity map
        query = (
            select(AccessCode)
            .where(AccessCode.code == normalized)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def _get_for_admin(self, requester: Principal, code: str) -> AccessCode:
        decision = await self.evaluator.evaluate(requester, Action.UPDATE, ResourceType.ACCESS_CODE, None)
        decision.raise_for_deny()
        access_code = await self.get_by_code(code)
        if access_code is None:
            raise ConstraintViolation("Access code not found", reason=ValidationReason.CODE_NOT_FOUND)
        return access_code

    @staticmethod
    def _rejection(access_code: AccessCode, now: datetime) -> Optional[str]:
        if not access_code.is_active:
            return ValidationReason.CODE_INACTIVE
        if access_code.is_expired(now):
            return ValidationReason.CODE_EXPIRED
        if access_code.exhausted:
            return ValidationReason.MAX_USES_EXCEEDED
        return None

    async def source_blocked(
        self,
        source_ip: Optional[str],
        now: Optional[datetime] = None,
    ) -> Optional[ValidationResult]:
        """The brute-force guard on its own, for every path that looks codes up."""
        if not source_ip:
            return None
        return await self._brute_force_block(source_ip, now or utcnow())

    def record_failure(
        self,
        reason: str,
        source_ip: Optional[str],
        details: dict,
        resource_id: Optional[uuid.UUID] = None,
    ) -> ValidationResult:
        """Log a failed attempt; these rows feed the brute-force window."""
        self.audit.record(
            SecurityEventType.ACCESS_CODE_VALIDATION_FAILED,
            resource_type=RESOURCE if resource_id else None,
            resource_id=resource_id,
            details={"reason": reason, **details},
            risk_level=RiskLevel.MEDIUM,
            ip_address=source_ip,
        )
        return ValidationResult.failed(reason)

    async def _brute_force_block(self, source_ip: str, now: datetime) -> Optional[ValidationResult]:
        window_start = now - timedelta(minutes=self.settings.brute_force_window_minutes)
        failures = await self.audit.count_failed_validations(source_ip, window_start)
        if failures < self.settings.brute_force_threshold:
            return None

        blocked_until = now + timedelta(minutes=self.settings.brute_force_block_minutes)
        self.audit.record(
            SecurityEventType.ACCESS_CODE_BRUTE_FORCE_BLOCKED,
            details={"attempt_count": failures, "blocked_until": blocked_until},
            risk_level=RiskLevel.CRITICAL,
            ip_address=source_ip,
        )
        return ValidationResult(
            valid=False,
            reason=ValidationReason.RATE_LIMITED,
            blocked_until=blocked_until,
        )
