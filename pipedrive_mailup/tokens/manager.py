"""
Token manager - issue, refresh, authorize and revoke Pipedrive credentials.

This is the single interface other components use to get an active
Pipedrive token for an account. Refreshes are serialized per account key
so concurrent requests never spend the same refresh token twice.
"""

import asyncio
import logging
import time
from typing import Callable

from ..exceptions import AuthenticationRequired, RefreshFailed, TokenNotFound, UpstreamUnavailable
from ..models import AccountKey, CredentialRecord, IssuedToken, needs_refresh
from ..pipedrive.oauth import PipedriveOAuth
from .store import TokenStore

logger = logging.getLogger(__name__)


class TokenManager:
    """Owns the credential lifecycle on top of a TokenStore."""

    def __init__(
        self,
        store: TokenStore,
        oauth: PipedriveOAuth,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.oauth = oauth
        self.clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, key: AccountKey) -> asyncio.Lock:
        return self._locks.setdefault(str(key), asyncio.Lock())

    async def issue(self, user_id: str, company_id: str) -> IssuedToken:
        """
        Return a non-expired token for ``(user_id, company_id)``.

        Raises:
            TokenNotFound: If the account never authorized or was revoked
            RefreshFailed: If a required refresh failed (the record is kept)
        """
        key = AccountKey(company_id=str(company_id), user_id=str(user_id))
        record = await self._fresh_record(key)
        return IssuedToken(
            access_token=record.access_token,
            api_domain=record.api_domain,
            expires_at=record.expires_at,
        )

    async def ensure_fresh(self, key: AccountKey) -> CredentialRecord:
        """
        Interactive variant of ``issue``.

        A failed refresh discards the credential so the browser flow can
        restart authorization.

        Raises:
            AuthenticationRequired: If there is no usable credential
        """
        try:
            return await self._fresh_record(key)
        except RefreshFailed:
            logger.warning(f"Discarding credential for {key} after failed refresh")
            self.store.remove(key)
            raise

    async def authorize(self, code: str) -> AccountKey:
        """Complete the authorization-code exchange and persist the result."""
        key, record = await self.oauth.exchange_code(code)
        async with self._lock_for(key):
            self.store.put(key, record)
        logger.info(f"Stored credential for {key}")
        return key

    async def revoke(self, key: AccountKey) -> bool:
        """
        Revoke the account's refresh token and delete its record.

        The record is deleted even if the revoke call fails; the failure is
        re-raised afterwards.

        Returns:
            False if there was nothing to revoke
        """
        if key not in self.store:
            return False

        async with self._lock_for(key):
            record = self.store.get(key)
            if record is None:
                return False
            try:
                await self.oauth.revoke(record.refresh_token)
            finally:
                self.store.remove(key)
                self._locks.pop(str(key), None)
                logger.info(f"Deleted credential for {key}")
        return True

    async def _fresh_record(self, key: AccountKey) -> CredentialRecord:
        record = self.store.get(key)
        if record is None:
            raise TokenNotFound(f"No credential for {key}")
        if not needs_refresh(record.expires_at, self.clock()):
            return record

        async with self._lock_for(key):
            # Another request may have refreshed while we waited
            record = self.store.get(key)
            if record is None:
                raise TokenNotFound(f"No credential for {key}")
            if not needs_refresh(record.expires_at, self.clock()):
                return record

            logger.info(f"Refreshing Pipedrive token for {key}")
            try:
                refreshed = await self.oauth.refresh(record)
            except AuthenticationRequired:
                raise
            except UpstreamUnavailable as e:
                raise RefreshFailed(str(e)) from e
            self.store.put(key, refreshed)
            return refreshed
