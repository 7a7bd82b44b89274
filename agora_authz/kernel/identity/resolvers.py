"""
Identity resolvers: credential scheme -> Principal.

Each resolver handles exactly one credential scheme and returns None when
its credential is absent or does not check out. IdentityResolverChain
asks them in order; the first principal wins. Adding or removing a
scheme is a registry/config change and never touches the evaluator.
"""

import uuid
from typing import Dict, List, Mapping, Optional, Sequence, Type

from sqlalchemy.ext.asyncio import AsyncSession

from agora_authz.config import Settings, get_settings
from agora_authz.kernel.access_codes.access_code_service import AccessCodeService, mask_code
from agora_authz.kernel.access_codes.results import ValidationReason
from agora_authz.kernel.identity.identity_service import IdentityService
from agora_authz.kernel.identity.jwt import JWTManager
from agora_authz.kernel.models.base import utcnow
from agora_authz.kernel.models.principal import Principal
from agora_authz.logging_config import get_logger

logger = get_logger(__name__)

ACCESS_CODE_HEADER = "x-access-code"
SESSION_TOKEN_HEADER = "x-session-token"
AUTHORIZATION_HEADER = "authorization"


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        # Plain dicts are case-sensitive; Starlette headers are not
        for key, candidate in headers.items():
            if key.lower() == name:
                value = candidate
                break
    if value is None:
        return None
    value = value.strip()
    return value or None


class IdentityResolver:
    """One credential scheme."""

    name: str = ""

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()
        self.identity = IdentityService(session, self.settings)

    async def resolve(self, headers: Mapping[str, str], source_ip: Optional[str] = None) -> Optional[Principal]:
        raise NotImplementedError


class AccessCodeResolver(IdentityResolver):
    """
    X-Access-Code: the principal an active, unexpired code was consumed by.

    Header guesses go through the same brute-force guard as sign-in: a
    blocked source resolves nothing, and every miss is logged as a failed
    validation against the source.
    """

    name = "access_code"

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        super().__init__(session, settings)
        self.codes = AccessCodeService(session, self.settings)

    async def resolve(self, headers: Mapping[str, str], source_ip: Optional[str] = None) -> Optional[Principal]:
        raw = _header(headers, ACCESS_CODE_HEADER)
        if raw is None:
            return None

        now = utcnow()
        if await self.codes.source_blocked(source_ip, now) is not None:
            return None

        normalized = self.codes.normalize(raw)
        if normalized is None:
            self.codes.record_failure(ValidationReason.INVALID_FORMAT, source_ip, {"length": len(raw)})
            return None

        access_code = await self.identity.get_access_code(normalized)
        if access_code is None:
            self.codes.record_failure(
                ValidationReason.CODE_NOT_FOUND,
                source_ip,
                {"attempted_code_pattern": mask_code(normalized)},
            )
            return None
        if not access_code.is_active or access_code.is_expired(now):
            reason = ValidationReason.CODE_INACTIVE if not access_code.is_active else ValidationReason.CODE_EXPIRED
            self.codes.record_failure(reason, source_ip, {"code_id": access_code.id}, resource_id=access_code.id)
            return None
        if access_code.used_by is None:
            return None
        return await self.identity.get_principal(access_code.used_by)


class SessionTokenResolver(IdentityResolver):
    """X-Session-Token: a session token minted at access-code sign-in."""

    name = "session"

    async def resolve(self, headers: Mapping[str, str], source_ip: Optional[str] = None) -> Optional[Principal]:
        token = _header(headers, SESSION_TOKEN_HEADER)
        if not token:
            return None

        payload = JWTManager(self.settings).verify_session_token(token)
        if payload is None:
            return None
        try:
            principal_id = uuid.UUID(payload.sub)
        except ValueError:
            return None
        return await self.identity.get_principal(principal_id)


class FederatedTokenResolver(IdentityResolver):
    """Authorization: Bearer <federated jwt>. Provisions the principal on first sight."""

    name = "federated"

    async def resolve(self, headers: Mapping[str, str], source_ip: Optional[str] = None) -> Optional[Principal]:
        authorization = _header(headers, AUTHORIZATION_HEADER)
        if not authorization:
            return None
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None

        payload = JWTManager(self.settings).verify_federated_token(token.strip())
        if payload is None:
            return None
        try:
            principal_id = uuid.UUID(payload.sub)
        except ValueError:
            logger.info("Federated token subject is not a UUID")
            return None

        principal, _ = await self.identity.get_or_create_principal(
            principal_id,
            display_name=payload.email,
            source="federated",
        )
        return principal


RESOLVER_REGISTRY: Dict[str, Type[IdentityResolver]] = {
    AccessCodeResolver.name: AccessCodeResolver,
    SessionTokenResolver.name: SessionTokenResolver,
    FederatedTokenResolver.name: FederatedTokenResolver,
}


class IdentityResolverChain:
    """Ordered resolvers; first non-empty result wins."""

    def __init__(self, resolvers: Sequence[IdentityResolver]):
        self.resolvers: List[IdentityResolver] = list(resolvers)

    async def resolve(self, headers: Mapping[str, str], source_ip: Optional[str] = None) -> Optional[Principal]:
        for resolver in self.resolvers:
            principal = await resolver.resolve(headers, source_ip)
            if principal is not None:
                logger.debug(
                    "Identity resolved",
                    extra={"scheme": resolver.name, "principal_id": str(principal.id)},
                )
                return principal
        return None


def build_resolver_chain(
    session: AsyncSession,
    settings: Optional[Settings] = None,
    names: Optional[Sequence[str]] = None,
) -> IdentityResolverChain:
    """
    Build the chain named by settings.identity_resolver_chain (or names).

    Raises:
        ValueError: unknown scheme name
    """
    settings = settings or get_settings()
    resolvers = []
    for name in names if names is not None else settings.identity_resolver_chain:
        resolver_cls = RESOLVER_REGISTRY.get(name)
        if resolver_cls is None:
            raise ValueError(f"Unknown identity resolver: {name}")
        resolvers.append(resolver_cls(session, settings))
    return IdentityResolverChain(resolvers)
