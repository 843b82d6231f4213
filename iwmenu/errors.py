"""iwmenu - Error taxonomy.

Every failure raised by the IPC client, the catalog, the agent or the
selector derives from IwmenuError so callers can decide, per class,
whether the session survives.
"""

from typing import Optional

# CallError kinds
TRANSIENT = 'transient'
REJECTED = 'rejected'
MALFORMED = 'malformed'

_TRANSIENT_NAMES = {
    'org.freedesktop.DBus.Error.NoReply',
    'org.freedesktop.DBus.Error.Timeout',
    'org.freedesktop.DBus.Error.TimedOut',
    'org.freedesktop.DBus.Error.LimitsExceeded',
    'net.connman.iwd.Busy',
    'net.connman.iwd.InProgress',
}

_MALFORMED_NAMES = {
    'org.freedesktop.DBus.Error.InvalidArgs',
    'org.freedesktop.DBus.Error.InvalidSignature',
    'org.freedesktop.DBus.Error.UnknownMethod',
    'org.freedesktop.DBus.Error.UnknownObject',
    'org.freedesktop.DBus.Error.UnknownInterface',
    'org.freedesktop.DBus.Error.UnknownProperty',
    'net.connman.iwd.InvalidArguments',
    'net.connman.iwd.InvalidFormat',
}

_TRANSPORT_NAMES = {
    'org.freedesktop.DBus.Error.ServiceUnknown',
    'org.freedesktop.DBus.Error.NameHasNoOwner',
    'org.freedesktop.DBus.Error.Disconnected',
    'org.freedesktop.DBus.Error.NoServer',
}

# Daemon error names that have a friendlier wording than their message
_FRIENDLY_REASONS = {
    'net.connman.iwd.Aborted': 'Connection canceled',
    'net.connman.iwd.NotConnected': 'Not connected',
    'net.connman.iwd.NotFound': 'Network not found',
}


class IwmenuError(Exception):
    """Base class for all iwmenu errors."""


class TransportError(IwmenuError):
    """The bus or the daemon is unreachable; fatal for the session."""


class CallError(IwmenuError):
    """A single daemon call was rejected.

    Attributes:
        kind: One of TRANSIENT, REJECTED or MALFORMED.
        name: The D-Bus error name reported by the daemon, if any.
        message: The daemon's own error text.
    """

    def __init__(self, message: str, name: str = '', kind: str = REJECTED):
        super().__init__(message)
        self.message = message
        self.name = name
        self.kind = kind

    @property
    def reason(self) -> str:
        """Human-readable reason, preferring the daemon's wording."""
        return failure_reason(self.name, self.message)

    @property
    def transient(self) -> bool:
        return self.kind == TRANSIENT


class ProtocolViolation(IwmenuError):
    """The daemon or the controller broke the agent's request protocol."""


class SelectorError(IwmenuError):
    """The selector process failed to spawn or produced unusable output."""


class StaleSelectionError(IwmenuError):
    """A selection refers to a network that is no longer in the catalog."""


class AuthCancelled(IwmenuError):
    """A pending authentication request was cancelled."""


def classify_error_name(name: Optional[str]) -> str:
    """Return the CallError kind for a D-Bus error name.

    Args:
        name: Fully qualified error name, e.g. 'net.connman.iwd.Busy'.

    Returns:
        TRANSIENT, MALFORMED or REJECTED (the default for daemon errors).
    """
    if not name:
        return REJECTED
    if name in _TRANSIENT_NAMES:
        return TRANSIENT
    if name in _MALFORMED_NAMES:
        return MALFORMED
    return REJECTED


def is_transport_error(name: Optional[str]) -> bool:
    """Return True if the error name means the daemon itself is gone."""
    return bool(name) and name in _TRANSPORT_NAMES


def failure_reason(name: Optional[str], message: Optional[str]) -> str:
    """Build the reason string shown to the user for a failed call."""
    if name in _FRIENDLY_REASONS:
        return _FRIENDLY_REASONS[name]
    if message:
        return message
    if name:
        return name.rsplit('.', 1)[-1]
    return 'Operation failed'
