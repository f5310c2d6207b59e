"""
Authentication for inbound calls.

- Panel webhook: HTTP Basic with BASIC_AUTH_USER / BASIC_AUTH_PASS
- Uninstall webhook: HTTP Basic with the Pipedrive client id / secret
- Token issuance: optional X-API-Key when INTERNAL_API_KEY is set
"""

import secrets

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader, HTTPBasic, HTTPBasicCredentials

from .config import config

REALM = "Pipedrive-MailUp Integration"

# Header name for the API key
API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)

_basic = HTTPBasic(realm=REALM, auto_error=False)


def _credentials_match(credentials: HTTPBasicCredentials | None, username: str, password: str) -> bool:
    if credentials is None or not username or not password:
        return False
    # Use constant-time comparison to prevent timing attacks
    user_ok = secrets.compare_digest(credentials.username.encode(), username.encode())
    pass_ok = secrets.compare_digest(credentials.password.encode(), password.encode())
    return user_ok and pass_ok


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid credentials",
        headers={"WWW-Authenticate": f'Basic realm="{REALM}"'},
    )


def verify_panel_basic_auth(credentials: HTTPBasicCredentials | None = Depends(_basic)) -> str:
    """Require the basic-auth pair configured for the Pipedrive panel."""
    if not _credentials_match(credentials, config.BASIC_AUTH_USER, config.BASIC_AUTH_PASS):
        raise _unauthorized()
    return credentials.username


def verify_pipedrive_basic_auth(credentials: HTTPBasicCredentials | None = Depends(_basic)) -> str:
    """Require Pipedrive's client id / secret (sent with app webhooks)."""
    if not _credentials_match(credentials, config.PIPEDRIVE_CLIENT_ID, config.PIPEDRIVE_CLIENT_SECRET):
        raise _unauthorized()
    return credentials.username


def verify_api_key_only(api_key: str | None = Security(API_KEY_HEADER)) -> str:
    """
    Verify the API key from request headers.

    If INTERNAL_API_KEY is not configured, the check is disabled (the token
    endpoint is then expected to be reachable only on the internal network).
    """
    configured_key = config.INTERNAL_API_KEY

    if not configured_key:
        return ""

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-Key header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not secrets.compare_digest(api_key, configured_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return api_key
