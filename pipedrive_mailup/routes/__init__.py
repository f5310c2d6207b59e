"""
API route modules.
"""

from .misc import router as misc_router
from .oauth import router as oauth_router
from .panel import router as panel_router
from .tokens import router as tokens_router

__all__ = [
    "misc_router",
    "oauth_router",
    "panel_router",
    "tokens_router",
]
