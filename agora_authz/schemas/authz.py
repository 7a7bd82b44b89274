"""
Policy evaluation and audit schemas.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from agora_authz.kernel.models.principal import PrincipalRole
from agora_authz.kernel.models.security_event import RiskLevel, SecurityEventType
from agora_authz.kernel.permissions.policy import Action, Decision, ResourceType


class EvaluateRequest(BaseModel):
    """
    Ask for a decision for the calling principal.

    resource_id is a UUID for table-backed resources, the deliberation ID
    when creating a tenant-scoped row, and the object path for stored files.
    """

    action: Action
    resource_type: ResourceType
    resource_id: Optional[str] = Field(None, max_length=1024)
    new_role: Optional[PrincipalRole] = None


class DecisionResponse(BaseModel):
    effect: str
    allowed: bool
    reason: str
    violation: Optional[str] = None

    @classmethod
    def from_decision(cls, decision: Decision) -> "DecisionResponse":
        return cls(
            effect=decision.effect.value,
            allowed=decision.allowed,
            reason=decision.reason,
            violation=decision.violation.value if decision.violation else None,
        )


class AuditEventCreate(BaseModel):
    event_type: SecurityEventType = SecurityEventType.CUSTOM
    resource_type: Optional[str] = Field(None, max_length=50)
    resource_id: Optional[str] = Field(None, max_length=1024)
    details: Dict[str, Any] = Field(default_factory=dict)
    risk_level: RiskLevel = RiskLevel.LOW


class AuditEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    event_type: str
    principal_id: Optional[uuid.UUID] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    risk_level: str
    is_high_risk: bool
    created_at: Optional[datetime] = None
