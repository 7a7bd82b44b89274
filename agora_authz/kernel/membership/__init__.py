"""
Role/Membership Store - deliberations and participant rows.
"""

from agora_authz.kernel.membership.membership_store import MembershipStore

__all__ = ["MembershipStore"]
