"""
Pydantic models for API request/response validation.
"""

from pydantic import BaseModel, ConfigDict, Field

from .models import IssuedToken, StatItem


# ─────────────────────────────────────────────────────────────
# Token Schemas
# ─────────────────────────────────────────────────────────────

class TokenResponse(BaseModel):
    """Delegated Pipedrive token for an account."""
    access_token: str
    api_domain: str
    expires_at: float

    @classmethod
    def from_issued(cls, token: IssuedToken) -> "TokenResponse":
        return cls(
            access_token=token.access_token,
            api_domain=token.api_domain,
            expires_at=token.expires_at,
        )


class AuthStatusResponse(BaseModel):
    """Result of a successful forward-auth check."""
    authenticated: bool
    account_key: str
    api_domain: str


class UninstallPayload(BaseModel):
    """Body of Pipedrive's app uninstall webhook."""
    client_id: str
    company_id: int | str
    user_id: int | str
    timestamp: str | None = None


# ─────────────────────────────────────────────────────────────
# Panel Schemas
# ─────────────────────────────────────────────────────────────

class PanelTag(BaseModel):
    color: str
    label: str


class PanelPreview(BaseModel):
    markdown: bool = True
    value: str


class PanelItem(BaseModel):
    """One message row in the Pipedrive JSON panel."""
    model_config = ConfigDict(populate_by_name=True)

    id: int
    header: str
    title: str
    views: int
    clicks: int
    tag: PanelTag
    # Field key configured in the Pipedrive app extension
    preview: PanelPreview = Field(alias="Anteprima")

    @classmethod
    def from_stat(cls, item: StatItem) -> "PanelItem":
        return cls(
            id=item.id,
            header=item.header,
            title=item.header,
            views=item.views,
            clicks=item.clicks,
            tag=PanelTag(color=item.tag_color, label=item.tag_label),
            preview=PanelPreview(value=item.content),
        )


class PanelResponse(BaseModel):
    data: list[PanelItem]
