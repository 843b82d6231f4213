"""iwmenu - Data model and IPC events.

Plain dataclasses shared by the catalog, the agent and the session
controller. Nothing here talks to D-Bus.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class ScanState(Enum):
    IDLE = 'idle'
    SCANNING = 'scanning'


class Security(Enum):
    OPEN = 'open'
    PSK = 'psk'
    WEP = 'wep'
    ENTERPRISE = '8021x'
    HIDDEN = 'hidden'

    @classmethod
    def from_iwd(cls, value: Optional[str]) -> 'Security':
        """Map iwd's network Type property onto a Security value."""
        try:
            return cls(value)
        except ValueError:
            return cls.OPEN

    @property
    def needs_secret(self) -> bool:
        return self in (Security.PSK, Security.WEP, Security.ENTERPRISE)


class ConnectionKind(Enum):
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    DISCONNECTING = 'disconnecting'
    FAILED = 'failed'


# ---------------------------------------------------------------------------
# Catalog entities
# ---------------------------------------------------------------------------

@dataclass
class Adapter:
    """One wireless interface (iwd Device) and its radio (iwd Adapter)."""
    path: str
    name: str = ''
    mode: str = 'station'
    powered: bool = False
    address: str = ''
    phy_path: str = ''
    phy_name: str = ''
    model: str = ''
    vendor: str = ''
    supported_modes: List[str] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        """Return the interface name, with the radio model when known."""
        if self.model:
            return f'{self.name} ({self.model})'
        return self.name or self.path


@dataclass(frozen=True)
class NetworkKey:
    """Stable network identity across refreshes."""
    adapter: str
    ssid: str
    security: Security


@dataclass
class Network:
    """A visible or previously-known wireless network."""
    key: NetworkKey
    path: str = ''
    signal: int = 0
    dbm: int = -10000
    known: bool = False
    connected: bool = False
    autoconnect: bool = False
    hidden: bool = False
    visible: bool = True
    known_path: str = ''
    last_connected: str = ''

    @property
    def ssid(self) -> str:
        return self.key.ssid

    @property
    def security(self) -> Security:
        return self.key.security


@dataclass(frozen=True)
class ConnectionState:
    """Per-adapter connection state, derived from daemon data only."""
    kind: ConnectionKind = ConnectionKind.DISCONNECTED
    network: Optional[NetworkKey] = None
    reason: str = ''

    @classmethod
    def connected(cls, network: Optional[NetworkKey]) -> 'ConnectionState':
        return cls(ConnectionKind.CONNECTED, network)

    @classmethod
    def failed(cls, reason: str) -> 'ConnectionState':
        return cls(ConnectionKind.FAILED, reason=reason)


@dataclass
class AccessPointState:
    """Access point properties of an adapter in 'ap' mode."""
    started: bool = False
    ssid: str = ''
    frequency: int = 0


# ---------------------------------------------------------------------------
# Menu pages
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MenuEntry:
    """One menu line.

    Attributes:
        line: Exactly what is written to the selector's stdin.
        text: What the selector echoes back when the entry is chosen.
        tag: Opaque action tag; None for non-selectable lines.
    """
    line: str
    text: str
    tag: Any = None


@dataclass(frozen=True)
class MenuPage:
    """An immutable, ordered menu for a single selector invocation."""
    entries: Tuple[MenuEntry, ...] = ()
    prompt: str = ''
    free_text: bool = False
    password: bool = False

    def render(self) -> str:
        """Return the selector's stdin payload."""
        return '\n'.join(entry.line for entry in self.entries)

    def match(self, output: str) -> Optional[MenuEntry]:
        """Return the entry whose text equals *output*, or None."""
        wanted = output.strip()
        for entry in self.entries:
            if entry.text.strip() == wanted:
                return entry
        return None

    def tags(self) -> List[Any]:
        return [entry.tag for entry in self.entries]


# ---------------------------------------------------------------------------
# Events (IPC layer -> catalog / controller)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PropertiesChanged:
    path: str
    interface: str
    changed: Dict[str, Any] = field(default_factory=dict)
    invalidated: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ObjectAdded:
    path: str
    interfaces: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass(frozen=True)
class ObjectRemoved:
    path: str
    interfaces: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CallFinished:
    """Reply of an asynchronous daemon call."""
    path: str
    interface: str
    method: str
    error_name: str = ''
    error_message: str = ''

    @property
    def ok(self) -> bool:
        return not self.error_name


@dataclass(frozen=True)
class CatalogSnapshot:
    """Full object table plus station-ordered signal strengths."""
    objects: Dict[str, Dict[str, Dict[str, Any]]] = field(default_factory=dict)
    signals: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class AgentRequested:
    request: Any


@dataclass(frozen=True)
class AgentCancelled:
    request: Any
    reason: str = ''


@dataclass(frozen=True)
class AgentReleased:
    pass


@dataclass(frozen=True)
class ServiceLost:
    """The daemon dropped off the bus."""
    service: str = ''
