"""
Pipedrive OAuth routes.

Handles the forward-auth check, the consent redirect and callback, logout,
and Pipedrive's app uninstall webhook.
"""

import logging

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import HTMLResponse, RedirectResponse

from ..auth import verify_pipedrive_basic_auth
from ..config import config, get_token_manager
from ..exceptions import AuthenticationRequired, InvalidRequest, UpstreamUnavailable
from ..models import AccountKey
from ..oauth_flow import verify_callback_state
from ..pipedrive import generate_state
from ..schemas import AuthStatusResponse, UninstallPayload
from ..sessions import SessionData, clear_session, read_session, write_session
from ..tokens import TokenManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["oauth"])


def _start_authorization(tokens: TokenManager) -> RedirectResponse:
    """Mint a state nonce, remember it in the session and redirect to consent."""
    nonce = generate_state()
    response = RedirectResponse(url=tokens.oauth.get_auth_url(nonce), status_code=307)
    write_session(SessionData(state=nonce), response)
    return response


@router.get("/auth", response_model=None)
async def forward_auth(
    request: Request,
    response: Response,
    tokens: TokenManager = Depends(get_token_manager),
) -> AuthStatusResponse | RedirectResponse:
    """
    Protected entry point.

    Returns the bound account when the session holds a usable credential,
    refreshing it if needed; otherwise starts authorization.
    """
    session = read_session(request)
    try:
        key = session.bound_account()
    except InvalidRequest:
        key = None

    if key is None:
        return _start_authorization(tokens)

    try:
        record = await tokens.ensure_fresh(key)
    except AuthenticationRequired as e:
        logger.info(f"Re-authorization required for {key}: {e}")
        return _start_authorization(tokens)

    response.headers["X-Pipedrive-Account"] = str(key)
    return AuthStatusResponse(
        authenticated=True,
        account_key=str(key),
        api_domain=record.api_domain,
    )


@router.get("/auth/login")
async def login(tokens: TokenManager = Depends(get_token_manager)) -> RedirectResponse:
    """Initiate the Pipedrive OAuth flow."""
    return _start_authorization(tokens)


@router.get("/auth/callback", response_model=None)
async def oauth_callback(
    request: Request,
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
    tokens: TokenManager = Depends(get_token_manager),
) -> HTMLResponse | RedirectResponse:
    """
    OAuth callback endpoint.

    Pipedrive redirects here after consent. Validates the state, exchanges
    the code, stores the credential and binds the session to the account.
    """
    session = read_session(request)

    if error:
        logger.warning(f"Pipedrive authorization declined: {error}")
        return HTMLResponse(content=_error_page("Authorization was declined."), status_code=400)

    if not code:
        return HTMLResponse(content=_error_page("Missing authorization code."), status_code=400)

    try:
        verify_callback_state(
            state,
            session.state,
            request.headers.get("referer"),
            config.PIPEDRIVE_REFERRER_DOMAIN,
        )
    except InvalidRequest as e:
        logger.warning(f"Rejected OAuth callback: {e}")
        return HTMLResponse(
            content=_error_page("Invalid OAuth state. Please try again."),
            status_code=400
        )

    try:
        key = await tokens.authorize(code)
    except InvalidRequest as e:
        logger.error(f"Pipedrive returned an unusable token: {e}")
        return HTMLResponse(content=_error_page("Unexpected token from Pipedrive."), status_code=400)
    except UpstreamUnavailable as e:
        logger.error(f"Pipedrive code exchange failed: {e}")
        return HTMLResponse(
            content=_error_page("Could not complete authorization with Pipedrive."),
            status_code=502
        )

    logger.info(f"Pipedrive connected for {key}")

    if config.AUTH_SUCCESS_URL:
        response = RedirectResponse(url=config.AUTH_SUCCESS_URL, status_code=302)
    else:
        response = HTMLResponse(content=_success_page(), status_code=200)
    write_session(SessionData(account_key=str(key)), response)
    return response


@router.post("/auth/logout")
async def logout(response: Response) -> dict:
    """Drop the session binding. The stored credential is kept."""
    clear_session(response)
    return {"message": "Logged out successfully"}


@router.delete("/uninstall", dependencies=[Depends(verify_pipedrive_basic_auth)])
async def uninstall(
    request: Request,
    tokens: TokenManager = Depends(get_token_manager),
) -> dict:
    """
    Pipedrive app uninstall webhook.

    Revokes the refresh token and deletes the credential. The credential is
    deleted even when the revoke call fails; the failure is still reported.
    """
    try:
        payload = UninstallPayload.model_validate(await request.json())
    except ValueError as e:
        raise InvalidRequest(f"Malformed uninstall payload: {e}") from e

    if payload.client_id != config.PIPEDRIVE_CLIENT_ID:
        raise InvalidRequest("Uninstall payload client_id does not match this app")

    key = AccountKey(company_id=str(payload.company_id), user_id=str(payload.user_id))
    revoked = await tokens.revoke(key)

    if not revoked:
        logger.info(f"Uninstall for {key}: no stored credential")
    return {"success": True, "revoked": revoked}


# ─────────────────────────────────────────────────────────────
# HTML Templates for OAuth Callback
# ─────────────────────────────────────────────────────────────

_PAGE_STYLE = """
        body {
            font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
            display: flex;
            justify-content: center;
            align-items: center;
            height: 100vh;
            margin: 0;
            background: #f3f4f6;
        }
        .card {
            background: white;
            padding: 40px;
            border-radius: 16px;
            text-align: center;
            box-shadow: 0 10px 40px rgba(0,0,0,0.1);
            max-width: 400px;
        }
        .note {
            font-size: 14px;
            color: #999;
        }
"""


def _success_page() -> str:
    """Generate success HTML page for OAuth callback."""
    return f"""
<!DOCTYPE html>
<html>
<head>
    <title>Pipedrive Connected</title>
    <style>{_PAGE_STYLE}
        h1 {{ color: #22c55e; }}
    </style>
</head>
<body>
    <div class="card">
        <h1>Pipedrive Connected!</h1>
        <p>The MailUp panel is now available on person details.</p>
        <p class="note">You can close this window and return to Pipedrive.</p>
    </div>
</body>
</html>
"""


def _error_page(error: str) -> str:
    """Generate error HTML page for OAuth callback."""
    return f"""
<!DOCTYPE html>
<html>
<head>
    <title>Connection Failed</title>
    <style>{_PAGE_STYLE}
        h1 {{ color: #dc2626; }}
    </style>
</head>
<body>
    <div class="card">
        <h1>Connection Failed</h1>
        <p>{error}</p>
        <p class="note">Please close this window and try again.</p>
    </div>
</body>
</html>
"""
