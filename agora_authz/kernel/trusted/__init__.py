"""
Trusted Kernel - recursion-safe membership and role lookups.
"""

from agora_authz.kernel.trusted.lookups import TrustedLookups

__all__ = ["TrustedLookups"]
