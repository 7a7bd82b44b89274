"""
FastAPI dependencies for identity resolution and database sessions.
"""

from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from agora_authz.database import async_session_maker
from agora_authz.kernel.errors import Unauthenticated
from agora_authz.kernel.identity.resolvers import build_resolver_chain
from agora_authz.kernel.models.principal import Principal


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that yields a request-scoped session.

    The whole request is one transaction: guarded writes and their audit
    rows commit together or roll back together.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


DbSession = Annotated[AsyncSession, Depends(get_db)]


async def resolve_principal(request: Request, db: DbSession) -> Optional[Principal]:
    """Run the configured resolver chain over the request headers."""
    chain = build_resolver_chain(db)
    principal = await chain.resolve(request.headers, get_client_ip(request))
    if principal is None:
        # Failed access-code guesses still count toward the brute-force window
        await db.commit()
    return principal


async def get_current_principal(
    principal: Annotated[Optional[Principal], Depends(resolve_principal)],
) -> Principal:
    """Resolved principal or 401."""
    if principal is None:
        raise Unauthenticated("Not authenticated")
    return principal


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
OptionalPrincipal = Annotated[Optional[Principal], Depends(resolve_principal)]


def get_request_id(request: Request) -> Optional[str]:
    """Get request correlation ID (set by RequestIdMiddleware)."""
    return getattr(request.state, "request_id", None)


def get_client_ip(request: Request) -> Optional[str]:
    """Extract client IP from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
