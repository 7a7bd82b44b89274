"""
Authorization Kernel

Layers, leaves first:
- Access-Code Lifecycle (issue, validate, consume)
- Identity Core (credential -> principal)
- Membership Store (principals, deliberations, participants)
- Trusted Lookups (raw membership/role reads, safe inside predicates)
- Permission Core (one Allow/Deny per principal, action, resource)
- Security Event Log (append-only, same transaction as the mutation)

Architectural invariants:
- Exactly one principal per request; it is passed explicitly, never ambient
- Trusted lookups never depend on the permission layer
- Audit rows are written in the transaction of the mutation they describe
"""

from agora_authz.kernel.models import (
    AccessCode,
    AccessCodeState,
    AccessCodeType,
    Deliberation,
    DeliberationStatus,
    DeliberationVisibility,
    Participant,
    ParticipantRole,
    Principal,
    PrincipalRole,
    RiskLevel,
    SecurityEvent,
    SecurityEventType,
)

__all__ = [
    # Identity
    "Principal",
    "PrincipalRole",
    # Access codes
    "AccessCode",
    "AccessCodeState",
    "AccessCodeType",
    # Tenancy
    "Deliberation",
    "DeliberationStatus",
    "DeliberationVisibility",
    "Participant",
    "ParticipantRole",
    # Security log
    "SecurityEvent",
    "SecurityEventType",
    "RiskLevel",
]
