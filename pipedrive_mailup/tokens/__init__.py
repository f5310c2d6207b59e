"""
Pipedrive credential persistence and lifecycle.
"""

from .manager import TokenManager
from .store import TokenStore

__all__ = ["TokenManager", "TokenStore"]
