"""
Pipedrive-MailUp integration.

Pipedrive OAuth token management plus a person-detail panel showing
MailUp engagement stats.
"""

__version__ = "1.0.0"
