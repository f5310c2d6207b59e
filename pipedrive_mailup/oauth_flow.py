"""
OAuth callback validation.

The callback ``state`` must equal the nonce stored in the session. One
exception is kept on purpose: Pipedrive's marketplace install flow calls the
callback without a state, so a state-less callback referred from the
Pipedrive domain is accepted. This weakens CSRF protection for that path.
"""

import hmac
import logging
from urllib.parse import urlparse

from .exceptions import InvalidRequest

logger = logging.getLogger(__name__)


def is_provider_referrer(referer: str | None, provider_domain: str) -> bool:
    """True if ``referer`` is an https URL on ``provider_domain`` or a subdomain of it."""
    if not referer or not provider_domain:
        return False
    parsed = urlparse(referer)
    host = (parsed.hostname or "").lower()
    domain = provider_domain.lower().lstrip(".")
    if parsed.scheme != "https":
        return False
    return host == domain or host.endswith("." + domain)


def verify_callback_state(
    state: str | None,
    expected: str | None,
    referer: str | None,
    provider_domain: str,
) -> None:
    """
    Check the callback state against the session nonce.

    Raises:
        InvalidRequest: On mismatch, or a missing state outside the
            provider-referrer exception
    """
    if state:
        if not expected or not hmac.compare_digest(state, expected):
            raise InvalidRequest("OAuth state mismatch")
        return

    if is_provider_referrer(referer, provider_domain):
        logger.info("Accepting state-less OAuth callback referred from provider")
        return

    raise InvalidRequest("OAuth state missing")
