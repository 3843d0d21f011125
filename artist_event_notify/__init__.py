"""Artist event notifier package.

This package discovers newly announced events for artists that users
follow and sends each follower at most one push notification per event.
"""

__version__ = "0.1.0"

# Import key components to make them available at the package level
from .app import load_config, run_sync, trigger
from .catalog import CatalogClient, RateLimiter
from .errors import CatalogError, CatalogRateLimitError, ConfigurationError
from .models import AppConfig, KnownEvent, Subscription, SyncStats
from .push import ExpoPushService, PushService
from .store import EventStore, NotificationLedger, SubscriptionIndex
from .sync import SyncOrchestrator

__all__ = [
    'load_config',
    'run_sync',
    'trigger',
    'CatalogClient',
    'RateLimiter',
    'CatalogError',
    'CatalogRateLimitError',
    'ConfigurationError',
    'AppConfig',
    'KnownEvent',
    'Subscription',
    'SyncStats',
    'ExpoPushService',
    'PushService',
    'EventStore',
    'NotificationLedger',
    'SubscriptionIndex',
    'SyncOrchestrator',
]
