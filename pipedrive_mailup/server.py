"""
Pipedrive-MailUp API Server

FastAPI application providing endpoints for:
- Pipedrive OAuth (forward-auth check, consent, callback, uninstall)
- Token issuance for collaborating services
- The person-detail JSON panel with MailUp engagement stats
"""

import logging
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI

from . import __version__
from .config import config, state
from .exceptions import setup_exception_handlers
from .mailup import MailUpClient, MailUpCredential
from .message_cache import MessageDetailCache, mailup_detail_loader
from .pipedrive import PipedriveClient, PipedriveOAuth
from .routes import misc_router, oauth_router, panel_router, tokens_router
from .stats import StatsPipeline
from .tokens import TokenManager, TokenStore

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def build_state(http: httpx.AsyncClient) -> None:
    """Construct the stores, clients and pipeline and publish them on ``state``."""
    oauth = PipedriveOAuth(
        http,
        client_id=config.PIPEDRIVE_CLIENT_ID,
        client_secret=config.PIPEDRIVE_CLIENT_SECRET,
        redirect_uri=config.PIPEDRIVE_REDIRECT_URI,
        base_url=config.PIPEDRIVE_OAUTH_BASE_URL,
    )
    credential = MailUpCredential(
        http,
        client_id=config.MAILUP_CLIENT_ID,
        client_secret=config.MAILUP_CLIENT_SECRET,
        username=config.MAILUP_USERNAME,
        password=config.MAILUP_PASSWORD,
        token_url=config.MAILUP_TOKEN_URL,
    )
    mailup = MailUpClient(
        http,
        credential,
        base_url=config.MAILUP_API_BASE_URL,
        max_field_length=config.MAX_FIELD_LENGTH,
    )

    state.http = http
    state.token_store = TokenStore(config.TOKEN_STORE_PATH)
    state.token_manager = TokenManager(state.token_store, oauth)
    state.message_cache = MessageDetailCache(
        mailup_detail_loader(mailup, config.MAX_FIELD_LENGTH, config.MAILUP_REQUEST_DELAY)
    )
    state.pipeline = StatsPipeline(
        state.token_manager,
        PipedriveClient(http),
        mailup,
        state.message_cache,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup application resources."""
    config.validate()

    owns_http = False
    # Startup - skip if already initialized (e.g., by tests)
    if state.token_manager is None:
        state.http = httpx.AsyncClient(timeout=config.HTTP_TIMEOUT)
        owns_http = True
        build_state(state.http)
        logger.info(f"Token store: {config.TOKEN_STORE_PATH}")
        logger.info(f"Webhook path: /{config.WEBHOOK_BASE_PATH.lstrip('/')}")
        logger.info(f"Maximum field length: {config.MAX_FIELD_LENGTH} characters")

    yield

    # Shutdown
    if owns_http and state.http is not None:
        await state.http.aclose()
        state.http = None
        state.token_store = None
        state.token_manager = None
        state.message_cache = None
        state.pipeline = None


app = FastAPI(
    title="Pipedrive-MailUp Integration",
    version=__version__,
    lifespan=lifespan
)

setup_exception_handlers(app)

# Include routers
app.include_router(misc_router)
app.include_router(oauth_router)
app.include_router(tokens_router)
app.include_router(panel_router)


def main() -> None:
    """Run the API with uvicorn."""
    uvicorn.run(app, host="0.0.0.0", port=config.PORT, log_level=config.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
