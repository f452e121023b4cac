"""Core module for screenrelay."""

from screenrelay.core.capabilities import CapabilityGate
from screenrelay.core.config import ConfigManager
from screenrelay.core.conversation import ConversationLog
from screenrelay.core.errors import (
    AuthError,
    BackendError,
    BusyError,
    ErrorKind,
    InvalidInputError,
    InvalidModelError,
    NetworkError,
    NotActiveError,
    RelayError,
    UnsupportedCapabilityError,
)
from screenrelay.core.notifications import BroadcastSink, FanoutSink, LoggingSink, RecordingSink
from screenrelay.core.reconnect import ConnectionState, ReconnectionSupervisor
from screenrelay.core.registry import ProviderSlot, SessionRegistry
from screenrelay.core.router import SessionRouter
from screenrelay.core.settings import RelaySettings, SettingsStore

__all__ = [
    "AuthError",
    "BackendError",
    "BroadcastSink",
    "BusyError",
    "CapabilityGate",
    "ConfigManager",
    "ConnectionState",
    "ConversationLog",
    "ErrorKind",
    "FanoutSink",
    "InvalidInputError",
    "InvalidModelError",
    "LoggingSink",
    "NetworkError",
    "NotActiveError",
    "ProviderSlot",
    "ReconnectionSupervisor",
    "RecordingSink",
    "RelayError",
    "RelaySettings",
    "SessionRegistry",
    "SessionRouter",
    "SettingsStore",
    "UnsupportedCapabilityError",
]
