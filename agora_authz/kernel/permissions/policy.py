"""
Policy vocabulary: actions, resource types, decisions, and the fixed
action tables each rule grants.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from agora_authz.kernel.errors import ConstraintViolation, Forbidden


class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    UPDATE_ROLE = "update_role"


class ResourceType(str, Enum):
    PROFILE = "profile"
    DELIBERATION = "deliberation"
    PARTICIPANT = "participant"
    MESSAGE = "message"
    GRAPH_NODE = "graph_node"
    GRAPH_RELATIONSHIP = "graph_relationship"
    AGENT_CONFIGURATION = "agent_configuration"
    STORED_FILE = "stored_file"
    ACCESS_CODE = "access_code"
    SECURITY_EVENT = "security_event"


class Effect(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


class Violation(str, Enum):
    FORBIDDEN = "forbidden"
    CONSTRAINT = "constraint_violation"


# Reasons shared with callers
REASON_FORBIDDEN = "forbidden"
REASON_UNAUTHENTICATED = "unauthenticated"
REASON_ARCHIVED = "principal_archived"
REASON_ADMIN_ONLY = "only administrators can change roles"
REASON_LAST_ADMIN = "would leave no admins"


@dataclass(frozen=True)
class Decision:
    """Allow/Deny for one (principal, action, resource) triple."""

    effect: Effect
    reason: str
    violation: Optional[Violation] = None

    @property
    def allowed(self) -> bool:
        return self.effect == Effect.ALLOW

    @classmethod
    def allow(cls, reason: str) -> "Decision":
        return cls(Effect.ALLOW, reason)

    @classmethod
    def deny(cls, reason: str = REASON_FORBIDDEN, violation: Violation = Violation.FORBIDDEN) -> "Decision":
        return cls(Effect.DENY, reason, violation)

    def raise_for_deny(self) -> None:
        """Turn a Deny into the matching exception; no-op on Allow."""
        if self.allowed:
            return
        if self.violation == Violation.CONSTRAINT:
            raise ConstraintViolation(self.reason)
        raise Forbidden(self.reason)


TENANT_SCOPED: FrozenSet[ResourceType] = frozenset({
    ResourceType.DELIBERATION,
    ResourceType.PARTICIPANT,
    ResourceType.MESSAGE,
    ResourceType.GRAPH_NODE,
    ResourceType.GRAPH_RELATIONSHIP,
    ResourceType.AGENT_CONFIGURATION,
})

_ALL = frozenset({Action.READ, Action.CREATE, Action.UPDATE, Action.DELETE})
_CONTRIBUTE = frozenset({Action.READ, Action.CREATE})
_READ = frozenset({Action.READ})

PARTICIPANT_ACTIONS: Dict[ResourceType, FrozenSet[Action]] = {
    ResourceType.DELIBERATION: _READ,
    ResourceType.PARTICIPANT: _READ,
    ResourceType.MESSAGE: _CONTRIBUTE,
    ResourceType.GRAPH_NODE: _CONTRIBUTE,
    ResourceType.GRAPH_RELATIONSHIP: _CONTRIBUTE,
    ResourceType.AGENT_CONFIGURATION: _READ,
}

FACILITATOR_ACTIONS: Dict[ResourceType, FrozenSet[Action]] = {
    ResourceType.DELIBERATION: frozenset({Action.READ, Action.UPDATE}),
    ResourceType.PARTICIPANT: _ALL,
    ResourceType.MESSAGE: _ALL,
    ResourceType.GRAPH_NODE: _ALL,
    ResourceType.GRAPH_RELATIONSHIP: _ALL,
    ResourceType.AGENT_CONFIGURATION: _ALL,
}

_OWN_RECORD = frozenset({Action.READ, Action.UPDATE, Action.DELETE})

OWNER_ACTIONS: Dict[ResourceType, FrozenSet[Action]] = {
    ResourceType.PROFILE: _OWN_RECORD,
    # Leaving a deliberation; role within it is the facilitator's call
    ResourceType.PARTICIPANT: frozenset({Action.READ, Action.DELETE}),
    ResourceType.MESSAGE: _OWN_RECORD,
    ResourceType.GRAPH_NODE: _OWN_RECORD,
    ResourceType.GRAPH_RELATIONSHIP: _OWN_RECORD,
    ResourceType.AGENT_CONFIGURATION: _OWN_RECORD,
    ResourceType.STORED_FILE: _ALL,
}
