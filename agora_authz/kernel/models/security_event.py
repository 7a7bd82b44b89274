"""
Append-only security event log.

Rows are written inside the same transaction as the mutation they
describe, so a rollback removes both.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, JSON, String, Uuid, event
from sqlalchemy.orm import Mapped, mapped_column

from agora_authz.kernel.errors import AuditLogImmutableError
from agora_authz.kernel.models.base import Base, generate_uuid, utcnow


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SecurityEventType(str, Enum):
    """All event types for the security log."""

    # Access codes
    ACCESS_CODE_ISSUED = "access_code.issued"
    ACCESS_CODE_VALIDATION_SUCCEEDED = "access_code.validation_succeeded"
    ACCESS_CODE_VALIDATION_FAILED = "access_code.validation_failed"
    ACCESS_CODE_BRUTE_FORCE_BLOCKED = "access_code.brute_force_blocked"
    ACCESS_CODE_CONSUMED = "access_code.consumed"
    ACCESS_CODE_DEACTIVATED = "access_code.deactivated"
    ACCESS_CODE_RESET = "access_code.reset"

    # Principals
    PRINCIPAL_CREATED = "principal.created"
    PRINCIPAL_UPDATED = "principal.updated"
    PRINCIPAL_ARCHIVED = "principal.archived"
    PRINCIPAL_UNARCHIVED = "principal.unarchived"
    ROLE_CHANGED = "principal.role_changed"
    ROLE_CHANGE_DENIED = "principal.role_change_denied"
    ADMIN_SELF_DEMOTION_BLOCKED = "principal.admin_self_demotion_blocked"

    # Membership
    DELIBERATION_CREATED = "deliberation.created"
    DELIBERATION_STATUS_CHANGED = "deliberation.status_changed"
    PARTICIPANT_JOINED = "participant.joined"
    PARTICIPANT_REMOVED = "participant.removed"

    # Decisions / violations reported by callers
    ACCESS_DENIED = "policy.access_denied"
    CUSTOM = "custom"


HIGH_RISK_EVENT_TYPES = frozenset({
    SecurityEventType.ACCESS_CODE_BRUTE_FORCE_BLOCKED,
    SecurityEventType.ROLE_CHANGED,
    SecurityEventType.ROLE_CHANGE_DENIED,
    SecurityEventType.ADMIN_SELF_DEMOTION_BLOCKED,
    SecurityEventType.PRINCIPAL_ARCHIVED,
})


class SecurityEvent(Base):
    """
    Immutable security/audit event.

    Append-only: the ORM refuses updates and deletes.
    """

    __tablename__ = "security_events"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    event_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )
    # Actor; NULL for anonymous sources (e.g. validation from an IP)
    principal_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
        index=True,
    )
    resource_type: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )
    # String so object paths fit alongside UUIDs
    resource_id: Mapped[Optional[str]] = mapped_column(
        String(1024),
        nullable=True,
    )
    details: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )
    risk_level: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RiskLevel.LOW.value,
    )
    is_high_risk: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    ip_address: Mapped[Optional[str]] = mapped_column(
        String(45),  # IPv6 max length
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        Index("ix_security_events_type_ip_created", "event_type", "ip_address", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<SecurityEvent {self.event_type} risk={self.risk_level}>"


@event.listens_for(SecurityEvent, "before_update")
def _refuse_update(mapper, connection, target):
    raise AuditLogImmutableError("security events are append-only")


@event.listens_for(SecurityEvent, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise AuditLogImmutableError("security events are append-only")
