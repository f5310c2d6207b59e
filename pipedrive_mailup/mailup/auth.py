"""
MailUp service credential.

A single password-grant token shared by every aggregation request. It is
not tied to any Pipedrive account.
"""

import asyncio
import logging
import time
from typing import Callable

import httpx

from ..exceptions import UpstreamUnavailable
from ..models import REFRESH_LOOKAHEAD_SECONDS, needs_refresh

logger = logging.getLogger(__name__)


class MailUpAuthError(UpstreamUnavailable):
    """MailUp token endpoint error."""
    pass


class MailUpCredential:
    """Acquires and caches the process-wide MailUp access token."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        client_id: str,
        client_secret: str,
        username: str,
        password: str,
        token_url: str = "https://services.mailup.com/Authorization/OAuth/Token",
        clock: Callable[[], float] = time.time,
    ):
        self.http = http
        self.client_id = client_id
        self.client_secret = client_secret
        self.username = username
        self.password = password
        self.token_url = token_url
        self.clock = clock
        self._access_token = ""
        self._expires_at = 0.0
        self._lookahead = REFRESH_LOOKAHEAD_SECONDS
        self._lock = asyncio.Lock()

    @property
    def expires_at(self) -> float:
        return self._expires_at

    def _is_valid(self) -> bool:
        return bool(self._access_token) and not needs_refresh(
            self._expires_at, self.clock(), self._lookahead
        )

    async def access_token(self) -> str:
        """Return a valid token, requesting a new one when expired or close to it."""
        if self._is_valid():
            return self._access_token

        async with self._lock:
            if self._is_valid():
                return self._access_token
            await self._request_token()
            return self._access_token

    async def _request_token(self) -> None:
        logger.info("Requesting new MailUp access token")
        try:
            response = await self.http.post(
                self.token_url,
                data={
                    "grant_type": "password",
                    "username": self.username,
                    "password": self.password,
                },
                auth=(self.client_id, self.client_secret),
            )
        except httpx.HTTPError as e:
            logger.error(f"MailUp token request failed: {e}")
            raise MailUpAuthError("MailUp token request failed") from e

        if response.status_code != 200:
            logger.error(f"MailUp token request failed ({response.status_code}): {response.text}")
            raise MailUpAuthError(f"MailUp token request failed with status {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            logger.error(f"MailUp token response is not JSON: {e}")
            raise MailUpAuthError("MailUp token response is not JSON") from e

        if not isinstance(payload, dict) or "access_token" not in payload:
            raise MailUpAuthError("MailUp token response missing access_token")
        expires_in = int(payload.get("expires_in", 3600))
        self._access_token = payload["access_token"]
        self._expires_at = self.clock() + expires_in
        # Short-lived tokens are used until they actually expire
        self._lookahead = REFRESH_LOOKAHEAD_SECONDS if expires_in > REFRESH_LOOKAHEAD_SECONDS else 0
        logger.info(f"MailUp access token obtained (expires in {expires_in}s)")
