"""
Public façade for the Patreon integration
=========================================

Import from here::

    from subscriptions_app.patreon import CredentialStore, PageFetcher, PledgeAggregator, ...
"""

from .aggregator import PledgeAggregator
from .client import PageFetcher, USER_AGENT, members_url
from .credentials import CredentialStore
from .errors import (
    CredentialExpiredError,
    DecodeError,
    ExpiredCredentialFatal,
    PatreonError,
    PersistenceError,
    SyncCancelledError,
    TransportError,
    UpstreamStatusError,
)
from .models import Credential, Page, Patron, PatronAttributes
from .ratelimit import RateLimiter

__all__ = [
    "Credential",
    "CredentialExpiredError",
    "CredentialStore",
    "DecodeError",
    "ExpiredCredentialFatal",
    "Page",
    "PageFetcher",
    "Patron",
    "PatronAttributes",
    "PatreonError",
    "PersistenceError",
    "PledgeAggregator",
    "RateLimiter",
    "SyncCancelledError",
    "TransportError",
    "USER_AGENT",
    "UpstreamStatusError",
    "members_url",
]
