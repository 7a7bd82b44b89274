"""
Identity Core - credential resolution and principal management.
"""

from agora_authz.kernel.identity.jwt import JWTManager, SessionToken, SessionTokenPayload
from agora_authz.kernel.identity.identity_service import IdentityService
from agora_authz.kernel.identity.resolvers import (
    AccessCodeResolver,
    FederatedTokenResolver,
    IdentityResolver,
    IdentityResolverChain,
    RESOLVER_REGISTRY,
    SessionTokenResolver,
    build_resolver_chain,
)

__all__ = [
    "JWTManager",
    "SessionToken",
    "SessionTokenPayload",
    "IdentityService",
    "AccessCodeResolver",
    "FederatedTokenResolver",
    "IdentityResolver",
    "IdentityResolverChain",
    "RESOLVER_REGISTRY",
    "SessionTokenResolver",
    "build_resolver_chain",
]
