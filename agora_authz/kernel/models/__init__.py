"""
Kernel Data Models

Relational state the policy engine evaluates against.
"""

from agora_authz.kernel.models.base import Base, TimestampMixin, generate_uuid, utcnow, as_utc
from agora_authz.kernel.models.principal import Principal, PrincipalRole
from agora_authz.kernel.models.access_code import AccessCode, AccessCodeType, AccessCodeState
from agora_authz.kernel.models.deliberation import (
    Deliberation,
    DeliberationStatus,
    DeliberationVisibility,
    Participant,
    ParticipantRole,
    STATUS_ORDER,
)
from agora_authz.kernel.models.resources import (
    AgentConfiguration,
    GraphNode,
    GraphRelationship,
    Message,
    StoredFile,
)
from agora_authz.kernel.models.security_event import (
    SecurityEvent,
    SecurityEventType,
    RiskLevel,
    HIGH_RISK_EVENT_TYPES,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "generate_uuid",
    "utcnow",
    "as_utc",
    # Principal
    "Principal",
    "PrincipalRole",
    # Access codes
    "AccessCode",
    "AccessCodeType",
    "AccessCodeState",
    # Tenancy
    "Deliberation",
    "DeliberationStatus",
    "DeliberationVisibility",
    "Participant",
    "ParticipantRole",
    "STATUS_ORDER",
    # Guarded resources
    "AgentConfiguration",
    "GraphNode",
    "GraphRelationship",
    "Message",
    "StoredFile",
    # Security log
    "SecurityEvent",
    "SecurityEventType",
    "RiskLevel",
    "HIGH_RISK_EVENT_TYPES",
]
