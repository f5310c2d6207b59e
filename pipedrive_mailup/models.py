"""
Domain models: Pipedrive credentials and MailUp message statistics.
"""

from dataclasses import dataclass
from typing import Any

from .exceptions import InvalidRequest

# Refresh this many seconds before the provider-reported expiry
REFRESH_LOOKAHEAD_SECONDS = 300


def needs_refresh(expires_at: float, now: float, lookahead: float = REFRESH_LOOKAHEAD_SECONDS) -> bool:
    """True when a token expiring at ``expires_at`` must be renewed at ``now``."""
    return now >= expires_at - lookahead


@dataclass(frozen=True)
class AccountKey:
    """Composite ``company_id:user_id`` identifying one installed account."""
    company_id: str
    user_id: str

    def __str__(self) -> str:
        return f"{self.company_id}:{self.user_id}"

    @classmethod
    def parse(cls, text: str) -> "AccountKey":
        """Parse ``company_id:user_id``."""
        parts = text.split(":") if text else []
        if len(parts) != 2 or not all(p.strip() for p in parts):
            raise InvalidRequest(f"Malformed account key: {text!r}")
        return cls(company_id=parts[0].strip(), user_id=parts[1].strip())

    @classmethod
    def from_refresh_token(cls, refresh_token: str) -> "AccountKey":
        """
        Derive the account key from a Pipedrive refresh token.

        Pipedrive refresh tokens look like ``<company_id>:<user_id>:<secret>``.
        """
        parts = refresh_token.split(":") if refresh_token else []
        if len(parts) < 3 or not parts[0].isdigit() or not parts[1].isdigit():
            raise InvalidRequest("Refresh token does not carry a company/user identifier")
        return cls(company_id=parts[0], user_id=parts[1])


@dataclass(frozen=True)
class CredentialRecord:
    """Persisted OAuth token bundle for one account key."""
    access_token: str
    refresh_token: str
    expires_at: float  # epoch seconds
    scope: str = ""
    api_domain: str = ""

    @classmethod
    def from_token_response(
        cls,
        payload: dict[str, Any],
        now: float,
        previous: "CredentialRecord | None" = None,
    ) -> "CredentialRecord":
        """
        Build a record from a Pipedrive token endpoint response.

        On refresh, fields the provider omits are carried over from ``previous``.
        """
        refresh_token = payload.get("refresh_token") or (previous.refresh_token if previous else "")
        return cls(
            access_token=payload["access_token"],
            refresh_token=refresh_token,
            expires_at=now + int(payload.get("expires_in", 3600)),
            scope=payload.get("scope") or (previous.scope if previous else ""),
            api_domain=payload.get("api_domain") or (previous.api_domain if previous else ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "scope": self.scope,
            "api_domain": self.api_domain,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CredentialRecord":
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=float(data["expires_at"]),
            scope=data.get("scope", ""),
            api_domain=data.get("api_domain", ""),
        )

    @property
    def is_complete(self) -> bool:
        return bool(self.access_token and self.refresh_token)


@dataclass(frozen=True)
class IssuedToken:
    """What the token issuance service hands to collaborators."""
    access_token: str
    api_domain: str
    expires_at: float


@dataclass(frozen=True)
class MessageStat:
    """Engagement counters for one message within one aggregation."""
    id: int
    header: str
    views: int = 0
    clicks: int = 0


@dataclass(frozen=True)
class MessageDetail:
    """Cached subject and cleaned preview of a sent message."""
    id: int
    header: str
    content: str


@dataclass(frozen=True)
class StatItem:
    """Enriched, classified row shown in the Pipedrive panel."""
    id: int
    header: str
    views: int
    clicks: int
    tag_color: str
    tag_label: str
    content: str
