"""
Pipedrive integration: OAuth and person lookups.
"""

from .client import PipedriveClient
from .oauth import PipedriveOAuth, PipedriveOAuthError, generate_state

__all__ = [
    "PipedriveClient",
    "PipedriveOAuth",
    "PipedriveOAuthError",
    "generate_state",
]
