"""
MailUp integration: service credential and REST client.
"""

from .auth import MailUpAuthError, MailUpCredential
from .client import MailUpClient, MailUpError

__all__ = [
    "MailUpAuthError",
    "MailUpClient",
    "MailUpCredential",
    "MailUpError",
]
