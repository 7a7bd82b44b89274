"""
Access codes: bearer tokens that stand in for identity before an account exists.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from agora_authz.kernel.models.base import Base, TimestampMixin, as_utc, generate_uuid, utcnow


class AccessCodeType(str, Enum):
    """What a consumed code signs its holder in as."""
    ADMIN = "admin"
    USER = "user"


class AccessCodeState(str, Enum):
    """Derived lifecycle state."""
    UNUSED = "unused"
    USED = "used"
    EXPIRED = "expired"
    DEACTIVATED = "deactivated"


class AccessCode(Base, TimestampMixin):
    """
    Access code record.

    current_uses never exceeds max_uses (NULL max_uses = unlimited).
    Once is_active is False the row is immutable.
    """

    __tablename__ = "access_codes"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    code: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        index=True,
        nullable=False,
    )
    code_type: Mapped[str] = mapped_column(
        String(20),
        default=AccessCodeType.USER.value,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    is_used: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    current_uses: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    max_uses: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    last_used_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    used_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("principals.id"),
        nullable=True,
        index=True,
    )
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("principals.id"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint(
            "max_uses IS NULL OR current_uses <= max_uses",
            name="ck_access_codes_uses_within_max",
        ),
        CheckConstraint("current_uses >= 0", name="ck_access_codes_uses_non_negative"),
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        expires_at = as_utc(self.expires_at)
        return expires_at is not None and expires_at < (now or utcnow())

    @property
    def exhausted(self) -> bool:
        return self.max_uses is not None and self.current_uses >= self.max_uses

    @property
    def remaining_uses(self) -> Optional[int]:
        if self.max_uses is None:
            return None
        return max(self.max_uses - self.current_uses, 0)

    def state(self, now: Optional[datetime] = None) -> AccessCodeState:
        if not self.is_active:
            return AccessCodeState.DEACTIVATED
        if self.is_expired(now):
            return AccessCodeState.EXPIRED
        if self.is_used:
            return AccessCodeState.USED
        return AccessCodeState.UNUSED

    def __repr__(self) -> str:
        # Never print the full code
        return f"<AccessCode {self.code[:2]}*** type={self.code_type} uses={self.current_uses}/{self.max_uses}>"
