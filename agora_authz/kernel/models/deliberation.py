"""
Deliberation (the tenant boundary) and its participant rows.
"""

import uuid
from enum import Enum

from sqlalchemy import ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from agora_authz.kernel.models.base import Base, TimestampMixin, generate_uuid


class DeliberationVisibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class DeliberationStatus(str, Enum):
    """Lifecycle; only forward moves are allowed."""
    DRAFT = "draft"
    ACTIVE = "active"
    CONCLUDED = "concluded"
    ARCHIVED = "archived"


STATUS_ORDER = [
    DeliberationStatus.DRAFT,
    DeliberationStatus.ACTIVE,
    DeliberationStatus.CONCLUDED,
    DeliberationStatus.ARCHIVED,
]


class ParticipantRole(str, Enum):
    """Per-deliberation role."""
    PARTICIPANT = "participant"
    FACILITATOR = "facilitator"
    OBSERVER = "observer"


class Deliberation(Base, TimestampMixin):
    """A discussion instance with its own participant set and visibility."""

    __tablename__ = "deliberations"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    title: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )
    visibility: Mapped[str] = mapped_column(
        String(20),
        default=DeliberationVisibility.PRIVATE.value,
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=DeliberationStatus.DRAFT.value,
        nullable=False,
    )
    facilitator_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(),
        ForeignKey("principals.id"),
        nullable=True,
        index=True,
    )

    @property
    def is_publicly_visible(self) -> bool:
        """Only public AND active deliberations are visible to non-participants."""
        return (
            self.visibility == DeliberationVisibility.PUBLIC.value
            and self.status == DeliberationStatus.ACTIVE.value
        )

    def __repr__(self) -> str:
        return f"<Deliberation {self.id} {self.visibility}/{self.status}>"


class Participant(Base, TimestampMixin):
    """
    Membership of a principal in a deliberation.

    Its own visibility predicate must never query this table through the
    guarded path; membership checks go through the trusted lookups.
    """

    __tablename__ = "participants"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    deliberation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("deliberations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    principal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("principals.id"),
        nullable=False,
        index=True,
    )
    role: Mapped[str] = mapped_column(
        String(20),
        default=ParticipantRole.PARTICIPANT.value,
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("deliberation_id", "principal_id", name="uq_participants_deliberation_principal"),
    )
