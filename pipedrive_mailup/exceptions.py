"""
Error taxonomy for the integration and HTTP handlers mapping it to responses.

Upstream details are logged where they happen; responses carry generic
messages only.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class IntegrationError(Exception):
    """Base class for all integration errors."""
    status_code = 500
    public_detail = "Internal server error"


class AuthenticationRequired(IntegrationError):
    """No usable credential; the caller must (re)authorize."""
    status_code = 401
    public_detail = "Authentication required"


class TokenNotFound(AuthenticationRequired):
    """No credential record exists for the account key."""
    status_code = 404
    public_detail = "Token not found"


class RefreshFailed(AuthenticationRequired):
    """The provider rejected or failed a refresh-token grant."""
    status_code = 401
    public_detail = "Token refresh failed"


class UpstreamUnavailable(IntegrationError):
    """A Pipedrive or MailUp call failed."""
    status_code = 502
    public_detail = "Upstream service unavailable"


class InvalidRequest(IntegrationError):
    """Malformed input or failed CSRF check; nothing was mutated."""
    status_code = 400
    public_detail = "Invalid request"


class ConfigurationError(IntegrationError):
    """Required settings are missing; the app must not start."""


def integration_error_handler(request: Request, exc: IntegrationError) -> JSONResponse:
    """Collapse integration errors into a generic JSON response."""
    logger.warning(f"{request.method} {request.url.path} failed: {exc.__class__.__name__}: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.public_detail})


def setup_exception_handlers(app: FastAPI) -> None:
    """Register handlers for the integration error taxonomy."""
    app.add_exception_handler(IntegrationError, integration_error_handler)
