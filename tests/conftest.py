"""Shared test configuration.

Points the app at tests/config.test.yaml and switches session-token
verification to HS256 with a test secret before any agentdesk module loads.
"""

import os
import time
from pathlib import Path

import jwt
import pytest

TEST_JWT_SECRET = "agentdesk-test-session-secret-0123456789"
TEST_ISSUER = "https://identity.test"

os.environ["AGENTDESK_CONFIG"] = str(Path(__file__).parent / "config.test.yaml")
os.environ["IDENTITY_JWT_SECRET"] = TEST_JWT_SECRET


def make_session_token(
    sub: str | None = "user_123",
    sid: str | None = "sess_456",
    expires_in: int = 300,
    secret: str = TEST_JWT_SECRET,
    **extra,
) -> str:
    """Sign a session JWT the way the identity provider would."""
    now = int(time.time())
    claims = {"iss": TEST_ISSUER, "iat": now, "exp": now + expires_in, **extra}
    if sub is not None:
        claims["sub"] = sub
    if sid is not None:
        claims["sid"] = sid
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def session_token() -> str:
    return make_session_token()


@pytest.fixture
def config():
    from agentdesk.config import load_config

    return load_config()
