"""
Permission Core - fixed, resource-typed policy predicates.
"""

from agora_authz.kernel.permissions.policy import (
    Action,
    Decision,
    Effect,
    ResourceType,
    Violation,
)
from agora_authz.kernel.permissions.policy_evaluator import PolicyEvaluator
from agora_authz.kernel.permissions.resource_scope import ResourceScope, ResourceScopeLoader

__all__ = [
    "Action",
    "Decision",
    "Effect",
    "ResourceType",
    "Violation",
    "PolicyEvaluator",
    "ResourceScope",
    "ResourceScopeLoader",
]
