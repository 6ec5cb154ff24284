"""sipstatus - Live PBX extension status over server-sent events."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("sipstatus")
except PackageNotFoundError:
    __version__ = "0+local"
from sipstatus.broadcast import Broadcaster, Mailbox, PublishResult, Subscription, format_update
from sipstatus.config import AmiSettings, StatusConfig
from sipstatus.exceptions import (
    AmiActionError,
    AmiConnectionError,
    AmiError,
    ConfigError,
    DescriptionSourceError,
    SipStatusError,
)
from sipstatus.models import CanonicalStatus, Endpoint
from sipstatus.state.events import StatusUpdate, UpdateSource
from sipstatus.state.store import StateStore
from sipstatus.stream import SessionState, StreamSession
from sipstatus.sync import SyncCoordinator, SyncReport

__all__ = [
    "__version__",
    "AmiActionError",
    "AmiConnectionError",
    "AmiError",
    "AmiSettings",
    "Broadcaster",
    "CanonicalStatus",
    "ConfigError",
    "DescriptionSourceError",
    "Endpoint",
    "Mailbox",
    "PublishResult",
    "SessionState",
    "SipStatusError",
    "StateStore",
    "StatusConfig",
    "StatusUpdate",
    "StreamSession",
    "Subscription",
    "SyncCoordinator",
    "SyncReport",
    "UpdateSource",
    "format_update",
]
