"""Initial authorization schema

Revision ID: 0001
Revises: 
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Principals table
    op.create_table(
        'principals',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('role', sa.String(50), nullable=False, default='user', index=True),
        sa.Column('archived', sa.Boolean(), nullable=False, default=False),
        sa.Column('archived_by', sa.Uuid(), sa.ForeignKey('principals.id'), nullable=True),
        sa.Column('archived_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('archive_reason', sa.Text(), nullable=True),
        *_timestamps(),
    )

    # Access codes table
    op.create_table(
        'access_codes',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('code', sa.String(32), unique=True, nullable=False, index=True),
        sa.Column('code_type', sa.String(20), nullable=False, default='user'),
        sa.Column('is_active', sa.Boolean(), nullable=False, default=True),
        sa.Column('is_used', sa.Boolean(), nullable=False, default=False),
        sa.Column('current_uses', sa.Integer(), nullable=False, default=0),
        sa.Column('max_uses', sa.Integer(), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('used_by', sa.Uuid(), sa.ForeignKey('principals.id'), nullable=True, index=True),
        sa.Column('created_by', sa.Uuid(), sa.ForeignKey('principals.id'), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('max_uses IS NULL OR current_uses <= max_uses', name='ck_access_codes_uses_within_max'),
        sa.CheckConstraint('current_uses >= 0', name='ck_access_codes_uses_non_negative'),
    )

    # Deliberations table (tenant boundary)
    op.create_table(
        'deliberations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('visibility', sa.String(20), nullable=False, default='private'),
        sa.Column('status', sa.String(20), nullable=False, default='draft'),
        sa.Column('facilitator_id', sa.Uuid(), sa.ForeignKey('principals.id'), nullable=True, index=True),
        *_timestamps(),
    )

    # Participants table
    op.create_table(
        'participants',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('deliberation_id', sa.Uuid(), sa.ForeignKey('deliberations.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('principal_id', sa.Uuid(), sa.ForeignKey('principals.id'), nullable=False, index=True),
        sa.Column('role', sa.String(20), nullable=False, default='participant'),
        *_timestamps(),
        sa.UniqueConstraint('deliberation_id', 'principal_id', name='uq_participants_deliberation_principal'),
    )

    # Guarded resources
    op.create_table(
        'messages',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('deliberation_id', sa.Uuid(), sa.ForeignKey('deliberations.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('author_id', sa.Uuid(), sa.ForeignKey('principals.id'), nullable=True, index=True),
        sa.Column('content', sa.Text(), nullable=False, default=''),
        *_timestamps(),
    )

    op.create_table(
        'graph_nodes',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('deliberation_id', sa.Uuid(), sa.ForeignKey('deliberations.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('created_by', sa.Uuid(), sa.ForeignKey('principals.id'), nullable=True),
        sa.Column('node_type', sa.String(50), nullable=False, default='issue'),
        sa.Column('title', sa.String(500), nullable=False, default=''),
        *_timestamps(),
    )

    op.create_table(
        'graph_relationships',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('deliberation_id', sa.Uuid(), sa.ForeignKey('deliberations.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('source_node_id', sa.Uuid(), sa.ForeignKey('graph_nodes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('target_node_id', sa.Uuid(), sa.ForeignKey('graph_nodes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_by', sa.Uuid(), sa.ForeignKey('principals.id'), nullable=True),
        sa.Column('relationship_type', sa.String(50), nullable=False, default='supports'),
        *_timestamps(),
    )

    op.create_table(
        'agent_configurations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('deliberation_id', sa.Uuid(), sa.ForeignKey('deliberations.id', ondelete='CASCADE'), nullable=True, index=True),
        sa.Column('created_by', sa.Uuid(), sa.ForeignKey('principals.id'), nullable=True),
        sa.Column('agent_type', sa.String(50), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False, default=False),
        *_timestamps(),
    )

    op.create_table(
        'stored_files',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('bucket', sa.String(100), nullable=False, default='documents'),
        sa.Column('path', sa.String(1024), nullable=False, unique=True),
        sa.Column('owner_id', sa.Uuid(), sa.ForeignKey('principals.id'), nullable=False, index=True),
        *_timestamps(),
    )

    # Security events (append-only, no updated_at)
    op.create_table(
        'security_events',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False, index=True),
        sa.Column('principal_id', sa.Uuid(), nullable=True, index=True),
        sa.Column('resource_type', sa.String(50), nullable=True),
        sa.Column('resource_id', sa.String(1024), nullable=True),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('risk_level', sa.String(20), nullable=False, default='low'),
        sa.Column('is_high_risk', sa.Boolean(), nullable=False, default=False),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        'ix_security_events_type_ip_created',
        'security_events',
        ['event_type', 'ip_address', 'created_at'],
    )


def downgrade() -> None:
    op.drop_index('ix_security_events_type_ip_created', table_name='security_events')
    op.drop_table('security_events')
    op.drop_table('stored_files')
    op.drop_table('agent_configurations')
    op.drop_table('graph_relationships')
    op.drop_table('graph_nodes')
    op.drop_table('messages')
    op.drop_table('participants')
    op.drop_table('deliberations')
    op.drop_table('access_codes')
    op.drop_table('principals')
