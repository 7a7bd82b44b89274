"""
JWT handling for session tokens and federated-auth tokens.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from agora_authz.config import Settings, get_settings

SESSION_TOKEN_TYPE = "session"


class SessionTokenPayload(BaseModel):
    """Session token minted at access-code sign-in."""

    sub: str  # Principal ID
    role: str
    exp: datetime
    iat: datetime
    jti: str


class FederatedTokenPayload(BaseModel):
    """Claims we rely on from the federated auth provider."""

    sub: str  # Provider user ID, also the principal ID
    email: Optional[str] = None
    exp: datetime


class SessionToken(BaseModel):
    """Session token handed back to the client."""

    session_token: str
    token_type: str = "session"
    expires_in: int  # Seconds until expiry


class JWTManager:
    """
    Session token creation and verification, plus verification of
    tokens issued by the federated auth provider.
    """

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.secret_key = settings.secret_key
        self.algorithm = settings.algorithm
        self.session_token_expire_minutes = settings.session_token_expire_minutes
        self.federated_secret = settings.federated_jwt_secret
        self.federated_audience = settings.federated_jwt_audience

    def create_session_token(
        self,
        principal_id: uuid.UUID,
        role: str,
        expires_delta: Optional[timedelta] = None,
    ) -> SessionToken:
        """
        Create a signed session token.

        Args:
            principal_id: Principal the token speaks for
            role: Role at issue time (informational; decisions re-read it)
            expires_delta: Optional custom lifetime
        """
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta or timedelta(minutes=self.session_token_expire_minutes))

        payload = {
            "sub": str(principal_id),
            "role": role,
            "exp": expire,
            "iat": now,
            "jti": str(uuid.uuid4()),
            "typ": SESSION_TOKEN_TYPE,
        }

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        return SessionToken(
            session_token=token,
            expires_in=int((expire - now).total_seconds()),
        )

    def verify_session_token(self, token: str) -> Optional[SessionTokenPayload]:
        """Decode a session token; None if invalid, expired or of another type."""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            return None

        if payload.get("typ") != SESSION_TOKEN_TYPE:
            return None

        return SessionTokenPayload(
            sub=payload["sub"],
            role=payload.get("role", ""),
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            jti=payload["jti"],
        )

    def verify_federated_token(self, token: str) -> Optional[FederatedTokenPayload]:
        """Decode a federated-auth token; None unless signature and audience check out."""
        try:
            payload = jwt.decode(
                token,
                self.federated_secret,
                algorithms=[self.algorithm],
                audience=self.federated_audience,
            )
        except JWTError:
            return None

        if not payload.get("sub") or "exp" not in payload:
            return None

        return FederatedTokenPayload(
            sub=payload["sub"],
            email=payload.get("email"),
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
