"""Core modules for the platform sync service."""

from .config import SyncSettings, get_settings
from .context import ApiStatus, ChannelIdentity, RetryCounter, StreamState, SyncContext
from .errors import LookupMiss, PlatformError, SyncError, TransportError
from .events import EventBus
from .health_server import HealthCheckServer
from .logging import setup_logging
from .pg_listener import ChannelUpdateListener, ChatActivityListener, pg_listen
from .rate_limit import RateBudget, retry_delay
from .scheduler import PollScheduler, RepeatingTask

__all__ = [
    # Settings
    "get_settings",
    "SyncSettings",
    # Shared state
    "ApiStatus",
    "ChannelIdentity",
    "RetryCounter",
    "StreamState",
    "SyncContext",
    # Errors
    "LookupMiss",
    "PlatformError",
    "SyncError",
    "TransportError",
    # Runtime
    "EventBus",
    "HealthCheckServer",
    "ChannelUpdateListener",
    "ChatActivityListener",
    "PollScheduler",
    "RateBudget",
    "RepeatingTask",
    "pg_listen",
    "retry_delay",
    "setup_logging",
]
