"""
Principal model: the canonical identity every decision is made for.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from agora_authz.kernel.models.base import Base, TimestampMixin, generate_uuid


class PrincipalRole(str, Enum):
    """Platform-wide roles."""
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


class Principal(Base, TimestampMixin):
    """
    A resolved identity.

    Created on first successful identity resolution. Non-role fields are
    changed by the principal itself; role and archive state only by an admin.
    Never hard-deleted while security events reference it.
    """

    __tablename__ = "principals"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    display_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    role: Mapped[str] = mapped_column(
        String(50),
        default=PrincipalRole.USER.value,
        nullable=False,
        index=True,
    )

    # Archive state
    archived: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    archived_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("principals.id"),
        nullable=True,
    )
    archived_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    archive_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    @property
    def is_admin(self) -> bool:
        return self.role == PrincipalRole.ADMIN.value

    def __repr__(self) -> str:
        return f"<Principal {self.id} role={self.role}{' archived' if self.archived else ''}>"
