"""
Principal schemas.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from agora_authz.kernel.models.principal import PrincipalRole


class PrincipalResponse(BaseModel):
    """Principal profile response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    display_name: Optional[str] = None
    role: str
    archived: bool
    archived_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class PrincipalProfileUpdate(BaseModel):
    """Self-service profile update. role may only repeat the current role."""

    display_name: Optional[str] = Field(None, min_length=1, max_length=255)
    role: Optional[PrincipalRole] = None


class RoleChangeRequest(BaseModel):
    role: PrincipalRole


class ArchiveRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)
