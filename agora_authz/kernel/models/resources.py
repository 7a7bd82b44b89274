"""
Guarded resource tables.

Only the columns that decide access are modelled: tenant scope
(deliberation_id), principal scope (owner), and global defaults.
The discussion-graph and agent semantics live elsewhere.
"""

import uuid
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from agora_authz.kernel.models.base import Base, TimestampMixin, generate_uuid


class Message(Base, TimestampMixin):
    """Chat message inside a deliberation."""

    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=generate_uuid)
    deliberation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("deliberations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("principals.id"),
        nullable=True,  # agent messages have no human author
        index=True,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")


class GraphNode(Base, TimestampMixin):
    """Issue / position / argument node of the discussion graph."""

    __tablename__ = "graph_nodes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=generate_uuid)
    deliberation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("deliberations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("principals.id"),
        nullable=True,
    )
    node_type: Mapped[str] = mapped_column(String(50), nullable=False, default="issue")
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")


class GraphRelationship(Base, TimestampMixin):
    """Edge between two graph nodes."""

    __tablename__ = "graph_relationships"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=generate_uuid)
    deliberation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("deliberations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    source_node_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("graph_nodes.id", ondelete="CASCADE"),
        nullable=False,
    )
    target_node_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("graph_nodes.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("principals.id"),
        nullable=True,
    )
    relationship_type: Mapped[str] = mapped_column(String(50), nullable=False, default="supports")


class AgentConfiguration(Base, TimestampMixin):
    """
    AI agent configuration.

    Default configurations (is_default, no deliberation) are globally
    readable regardless of tenant.
    """

    __tablename__ = "agent_configurations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=generate_uuid)
    deliberation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("deliberations.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("principals.id"),
        nullable=True,
    )
    agent_type: Mapped[str] = mapped_column(String(50), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class StoredFile(Base, TimestampMixin):
    """
    Metadata row for an uploaded object.

    Object paths are "<owner-id>/<name>"; the first folder is the owner.
    """

    __tablename__ = "stored_files"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=generate_uuid)
    bucket: Mapped[str] = mapped_column(String(100), nullable=False, default="documents")
    path: Mapped[str] = mapped_column(String(1024), nullable=False, unique=True)
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("principals.id"),
        nullable=False,
        index=True,
    )
