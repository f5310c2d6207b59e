"""
Pipedrive OAuth 2.0 client.

Authorization URL, code exchange, refresh and revocation against
oauth.pipedrive.com. The token endpoints are confidential: client
credentials are sent with HTTP Basic auth.
"""

import logging
import secrets
import time
from typing import Any, Callable
from urllib.parse import urlencode

import httpx

from ..exceptions import RefreshFailed, UpstreamUnavailable
from ..models import AccountKey, CredentialRecord

logger = logging.getLogger(__name__)


class PipedriveOAuthError(UpstreamUnavailable):
    """Pipedrive OAuth endpoint error."""
    pass


def generate_state() -> str:
    """Generate a secure random state parameter for CSRF protection."""
    return secrets.token_urlsafe(32)


class PipedriveOAuth:
    """Talks to the Pipedrive authorization server."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        base_url: str = "https://oauth.pipedrive.com",
        clock: Callable[[], float] = time.time,
    ):
        self.http = http
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.base_url = base_url.rstrip("/")
        self.clock = clock

    @property
    def token_url(self) -> str:
        return f"{self.base_url}/oauth/token"

    @property
    def revoke_url(self) -> str:
        return f"{self.base_url}/oauth/revoke"

    def get_auth_url(self, state: str) -> str:
        """
        Build the Pipedrive consent URL.

        Args:
            state: Random state parameter for CSRF protection

        Returns:
            Authorization URL to redirect the user to
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "state": state,
        }
        return f"{self.base_url}/oauth/authorize?{urlencode(params)}"

    async def exchange_code(self, code: str) -> tuple[AccountKey, CredentialRecord]:
        """
        Exchange an authorization code for a credential record.

        Returns:
            The account key parsed from the refresh token, and the record

        Raises:
            PipedriveOAuthError: If the token endpoint fails
            InvalidRequest: If the refresh token has no company/user identifier
        """
        payload = await self._token_request({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        })
        if not payload.get("refresh_token"):
            raise PipedriveOAuthError("Token exchange returned no refresh token")

        record = CredentialRecord.from_token_response(payload, now=self.clock())
        key = AccountKey.from_refresh_token(record.refresh_token)
        return key, record

    async def refresh(self, record: CredentialRecord) -> CredentialRecord:
        """
        Renew an access token with its refresh token.

        Raises:
            RefreshFailed: If Pipedrive rejects the grant or is unreachable
        """
        try:
            payload = await self._token_request({
                "grant_type": "refresh_token",
                "refresh_token": record.refresh_token,
            })
        except PipedriveOAuthError as e:
            raise RefreshFailed(str(e)) from e
        return CredentialRecord.from_token_response(payload, now=self.clock(), previous=record)

    async def revoke(self, refresh_token: str) -> None:
        """Revoke a refresh token (and with it every access token it issued)."""
        try:
            response = await self.http.post(
                self.revoke_url,
                data={"token": refresh_token, "token_type_hint": "refresh_token"},
                auth=(self.client_id, self.client_secret),
            )
        except httpx.HTTPError as e:
            raise PipedriveOAuthError(f"Token revoke request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Pipedrive revoke failed ({response.status_code}): {response.text}")
            raise PipedriveOAuthError(f"Token revoke failed with status {response.status_code}")

    async def _token_request(self, data: dict[str, str]) -> dict[str, Any]:
        try:
            response = await self.http.post(
                self.token_url,
                data=data,
                auth=(self.client_id, self.client_secret),
            )
        except httpx.HTTPError as e:
            raise PipedriveOAuthError(f"Token request failed: {e}") from e

        if response.status_code != 200:
            logger.error(
                f"Pipedrive {data['grant_type']} grant failed ({response.status_code}): {response.text}"
            )
            raise PipedriveOAuthError(
                f"Token {data['grant_type']} grant failed with status {response.status_code}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            logger.error(f"Pipedrive {data['grant_type']} grant returned invalid JSON: {e}")
            raise PipedriveOAuthError("Token response is not JSON") from e

        if not isinstance(payload, dict) or "access_token" not in payload:
            raise PipedriveOAuthError("Token response missing access_token")
        return payload
