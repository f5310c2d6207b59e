"""
Browser sessions for the OAuth flow.

Session data lives in a signed cookie: the account key the browser is bound
to, and the pending OAuth state nonce while a consent redirect is in flight.
"""

import logging
from typing import Optional

from fastapi import HTTPException, Request, Response
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from pydantic import BaseModel, ValidationError

from .config import config
from .models import AccountKey

logger = logging.getLogger(__name__)

SESSION_COOKIE = "pd_session"

# Session serializer for secure cookies
_serializer: Optional[URLSafeTimedSerializer] = None
_serializer_secret: str = ""


class SessionData(BaseModel):
    """Session data stored in cookie."""
    account_key: Optional[str] = None
    state: Optional[str] = None

    def bound_account(self) -> Optional[AccountKey]:
        """The account this session is bound to, if any."""
        if not self.account_key:
            return None
        return AccountKey.parse(self.account_key)


def get_serializer() -> URLSafeTimedSerializer:
    """Get the session serializer, creating it if needed."""
    global _serializer, _serializer_secret
    if not config.SESSION_SECRET:
        raise HTTPException(status_code=500, detail="SESSION_SECRET not configured")
    if _serializer is None or _serializer_secret != config.SESSION_SECRET:
        _serializer = URLSafeTimedSerializer(config.SESSION_SECRET, salt="pipedrive-session")
        _serializer_secret = config.SESSION_SECRET
    return _serializer


def read_session(request: Request) -> SessionData:
    """Extract and validate session from cookie; an empty session if absent or invalid."""
    cookie = request.cookies.get(SESSION_COOKIE)
    if not cookie:
        return SessionData()

    try:
        data = get_serializer().loads(cookie, max_age=config.SESSION_MAX_AGE)
        return SessionData(**data)
    except SignatureExpired:
        logger.debug("Session cookie expired")
    except BadSignature:
        logger.warning("Invalid session cookie signature")
    except (TypeError, ValidationError) as e:
        logger.warning(f"Error parsing session cookie: {e}")
    return SessionData()


def write_session(session: SessionData, response: Response) -> None:
    """Create a signed session cookie."""
    response.set_cookie(
        key=SESSION_COOKIE,
        value=get_serializer().dumps(session.model_dump()),
        max_age=config.SESSION_MAX_AGE,
        httponly=True,
        secure=config.SESSION_SECURE,
        samesite="lax",
        path="/",
    )


def clear_session(response: Response) -> None:
    """Clear the session cookie."""
    response.delete_cookie(
        key=SESSION_COOKIE,
        path="/",
        httponly=True,
        secure=config.SESSION_SECURE,
        samesite="lax",
    )
