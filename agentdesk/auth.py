"""Identity — session token verification and scoped credential exchange.

Browsers send the identity provider's session JWT as a bearer token. The
chat endpoint verifies it, then exchanges the session for a short-lived
JWT scoped to the backing store (a provider-side "token template").

Token values are never logged.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from functools import lru_cache

import httpx
import jwt
from fastapi import HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from agentdesk.config import IdentityConfig, get_config
from agentdesk.errors import CredentialExchangeError

logger = logging.getLogger(__name__)

# Optional bearer token (the dependency answers 401 itself)
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    user_id: str
    session_id: str | None = None
    org_id: str | None = None


@lru_cache(maxsize=8)
def _jwks_client(jwks_url: str) -> jwt.PyJWKClient:
    return jwt.PyJWKClient(jwks_url, cache_keys=True)


def _decode(token: str, config: IdentityConfig) -> dict:
    options = {"require": ["exp", "sub"], "verify_aud": config.audience is not None}
    shared_secret = os.environ.get("IDENTITY_JWT_SECRET")
    if shared_secret:
        return jwt.decode(
            token,
            shared_secret,
            algorithms=["HS256"],
            audience=config.audience,
            issuer=config.issuer,
            options=options,
        )

    if not config.jwks_url:
        raise RuntimeError("identity.jwks_url is not configured")
    signing_key = _jwks_client(config.jwks_url).get_signing_key_from_jwt(token)
    return jwt.decode(
        token,
        signing_key.key,
        algorithms=config.algorithms,
        audience=config.audience,
        issuer=config.issuer,
        options=options,
    )


def verify_session_token(token: str, config: IdentityConfig) -> Identity | None:
    """Return the caller identity carried by ``token``, or None if invalid.

    Blocking: the JWKS lookup may hit the network on a key-cache miss.
    """
    try:
        claims = _decode(token, config)
    except jwt.PyJWTError as e:
        logger.info(f"Rejected session token: {e}")
        return None

    if config.authorized_parties and claims.get("azp") not in config.authorized_parties:
        logger.info(f"Rejected session token from unauthorized party {claims.get('azp')!r}")
        return None

    return Identity(
        user_id=claims["sub"],
        session_id=claims.get("sid"),
        org_id=claims.get("org_id"),
    )


async def get_identity(
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
) -> Identity:
    """FastAPI dependency: the authenticated caller, or 401."""
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    identity = await asyncio.to_thread(
        verify_session_token, credentials.credentials, get_config().identity
    )
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return identity


class TokenExchanger:
    """Obtains backing-store credentials from the identity provider's backend API."""

    def __init__(
        self,
        config: IdentityConfig,
        secret_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._secret_key = secret_key
        self._transport = transport

    async def scoped_token(self, identity: Identity) -> str:
        """Return a short-lived JWT for the caller's session.

        Raises CredentialExchangeError on any failure.
        """
        if not identity.session_id:
            raise CredentialExchangeError("Session token carries no session id")

        secret = self._secret_key or os.environ.get("IDENTITY_SECRET_KEY")
        if not secret:
            raise CredentialExchangeError("IDENTITY_SECRET_KEY environment variable is not set")

        url = (
            f"{self._config.api_url.rstrip('/')}/sessions/{identity.session_id}"
            f"/tokens/{self._config.token_template}"
        )
        try:
            async with httpx.AsyncClient(
                timeout=self._config.timeout, transport=self._transport
            ) as client:
                resp = await client.post(url, headers={"Authorization": f"Bearer {secret}"})
            resp.raise_for_status()
            token = resp.json().get("jwt")
        except (httpx.HTTPError, ValueError) as e:
            raise CredentialExchangeError(f"Token exchange failed: {e}") from e

        if not token:
            raise CredentialExchangeError("Identity provider returned no token")
        return token


def get_token_exchanger() -> TokenExchanger:
    """FastAPI dependency: exchanger built from the current config."""
    return TokenExchanger(get_config().identity)
