"""
Miscellaneous routes: health check.
"""

from fastapi import APIRouter

from .. import __version__
from ..config import state

router = APIRouter(tags=["misc"])


@router.get("/status")
async def health_check() -> dict:
    """API health check."""
    return {
        "status": "ok",
        "version": __version__,
        "accounts": len(state.token_store) if state.token_store is not None else 0,
        "cached_messages": len(state.message_cache) if state.message_cache is not None else 0,
    }
