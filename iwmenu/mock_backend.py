"""iwmenu - Mock backends for testing.

MockIwdBus simulates iwd's D-Bus surface in memory: an object table,
scans, the Network.Connect handshake with the registered agent, known
networks and access point mode. ScriptedSelector answers menu pages from
a list of canned responses instead of spawning a launcher.
"""

import copy
import threading
from typing import Any, Dict, List, Optional

from .config import (
    ACCESS_POINT_IFACE,
    ADAPTER_IFACE,
    AGENT_MANAGER_IFACE,
    DEVICE_IFACE,
    KNOWN_NETWORK_IFACE,
    NETWORK_IFACE,
    OBJECT_MANAGER_IFACE,
    PROPERTIES_IFACE,
    STATION_IFACE,
)
from .errors import CallError, MALFORMED, TransportError
from .interfaces import (
    BusInterface,
    EventStream,
    MethodHandler,
    MethodReply,
    SelectorHandle,
    SelectorInterface,
)
from .models import (
    CallFinished,
    MenuPage,
    ObjectAdded,
    ObjectRemoved,
    PropertiesChanged,
    ServiceLost,
)

IWD_PREFIX = '/net/connman/iwd'

_AUTH_METHODS = {
    'psk': 'RequestPassphrase',
    'wep': 'RequestPassphrase',
    '8021x': 'RequestUserNameAndPassword',
}


def _ssid_hex(ssid: str) -> str:
    return ssid.encode('utf-8').hex()


class _MockReply(MethodReply):
    """Routes the agent's reply back into the simulated connect."""

    def __init__(self, bus: 'MockIwdBus', attempt: dict):
        self._bus = bus
        self._attempt = attempt
        self.sent = None

    def return_value(self, signature, values):
        self.sent = ('value', signature, tuple(values))
        self._bus._on_secret(self._attempt, tuple(values))

    def return_error(self, name, message):
        self.sent = ('error', name, message)
        self._bus._on_secret_refused(self._attempt, name)


class _DiscardReply(MethodReply):

    def return_value(self, signature, values):
        pass

    def return_error(self, name, message):
        pass


class MockIwdBus(BusInterface):
    """In-memory iwd for unit tests and IWMENU_MODE=test.

    Attributes:
        objects: The simulated object table.
        calls: Every (path, interface, method, args) the client issued.
        passphrases: Expected secret per network path; missing means any
            secret is accepted.
        connect_errors: Network path -> (error name, message) returned by
            the next Connect on that network.
        stalled: Network paths whose connect never completes.
        auto_finish_scan: When False, scans stay running until
            finish_scan() is called.
        scan_reply_first: When True, Scan only replies, the way iwd does;
            Scanning is raised later by begin_scan().
    """

    def __init__(self):
        self.objects: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self.passphrases: Dict[str, str] = {}
        self.connect_errors: Dict[str, tuple] = {}
        self.stalled = set()
        self.auto_finish_scan = True
        self.scan_reply_first = False
        self.requested_scans: List[str] = []
        self.reachable = True
        self.connected = False
        self.agent_path: Optional[str] = None
        self.agent_handler: Optional[MethodHandler] = None
        self.agent_replies: List[_MockReply] = []
        self.signals: Dict[str, int] = {}
        self._stream = EventStream()
        self._lock = threading.RLock()
        self._phy_count = 0
        self._auth_attempt: Optional[dict] = None

    # -- Fixture builders ----------------------------------------------------

    def add_adapter(self, name: str = 'wlan0', mode: str = 'station',
                    powered: bool = True, model: str = 'Mock Wireless') -> str:
        """Create an Adapter/Device/Station triple; return the device path."""
        phy = f'{IWD_PREFIX}/{self._phy_count}'
        device = f'{phy}/4'
        self._phy_count += 1
        self.objects[phy] = {ADAPTER_IFACE: {
            'Name': f'phy{self._phy_count - 1}', 'Model': model,
            'Vendor': 'Mock', 'Powered': powered,
            'SupportedModes': ['station', 'ap'],
        }}
        self.objects[device] = {DEVICE_IFACE: {
            'Name': name, 'Address': '02:00:00:00:00:0%d' % self._phy_count,
            'Powered': powered, 'Adapter': phy, 'Mode': mode,
        }}
        if mode == 'ap':
            self.objects[device][ACCESS_POINT_IFACE] = {'Started': False}
        elif powered:
            self.objects[device][STATION_IFACE] = {
                'State': 'disconnected', 'Scanning': False}
        return device

    def add_network(self, device: str, ssid: str, security: str = 'psk',
                    dbm: int = -5000, known: bool = False,
                    passphrase: Optional[str] = None,
                    autoconnect: bool = True, hidden: bool = False) -> str:
        """Create a visible Network object; return its path."""
        path = f'{device}/{_ssid_hex(ssid)}_{security}'
        props = {'Name': ssid, 'Type': security, 'Connected': False,
                 'Device': device}
        self.objects[path] = {NETWORK_IFACE: props}
        self.signals[path] = dbm
        if known:
            props['KnownNetwork'] = self.add_known_network(
                ssid, security, autoconnect=autoconnect, hidden=hidden)
        if passphrase is not None:
            self.passphrases[path] = passphrase
        return path

    def add_known_network(self, ssid: str, security: str = 'psk',
                          autoconnect: bool = True, hidden: bool = False) -> str:
        path = f'{IWD_PREFIX}/{_ssid_hex(ssid)}_{security}'
        self.objects[path] = {KNOWN_NETWORK_IFACE: {
            'Name': ssid, 'Type': security, 'Hidden': hidden,
            'AutoConnect': autoconnect,
            'LastConnectedTime': '2024-01-01T00:00:00Z',
        }}
        return path

    def set_connected(self, device: str, network_path: str) -> None:
        """Put the station into the connected state without events."""
        self.objects[device][STATION_IFACE].update(
            State='connected', ConnectedNetwork=network_path)
        self.objects[network_path][NETWORK_IFACE]['Connected'] = True

    # -- Event emission ------------------------------------------------------

    def emit(self, event) -> None:
        """Apply a daemon event to the object table and queue it."""
        with self._lock:
            if isinstance(event, PropertiesChanged):
                props = self.objects.setdefault(event.path, {}).setdefault(
                    event.interface, {})
                props.update(event.changed)
                for name in event.invalidated:
                    props.pop(name, None)
            elif isinstance(event, ObjectAdded):
                entry = self.objects.setdefault(event.path, {})
                for iface, props in event.interfaces.items():
                    entry[iface] = dict(props)
            elif isinstance(event, ObjectRemoved):
                entry = self.objects.get(event.path, {})
                for iface in event.interfaces:
                    entry.pop(iface, None)
                if not entry:
                    self.objects.pop(event.path, None)
                    self.signals.pop(event.path, None)
        self._stream.put(event)

    def _set(self, path: str, interface: str, **changed) -> None:
        self.emit(PropertiesChanged(path, interface, changed))

    def begin_scan(self, device: str) -> None:
        self._set(device, STATION_IFACE, Scanning=True)
        if self.auto_finish_scan:
            self.finish_scan(device)

    def finish_scan(self, device: str) -> None:
        self._set(device, STATION_IFACE, Scanning=False)

    def lose_service(self) -> None:
        self.reachable = False
        self._stream.put(ServiceLost('net.connman.iwd'))

    def daemon_cancel(self, reason: str = 'user-canceled') -> None:
        """Make the daemon call Agent.Cancel for the outstanding request."""
        attempt = self._auth_attempt
        self._auth_attempt = None
        self.agent_handler('Cancel', (reason,), _DiscardReply())
        if attempt is not None:
            self._fail(attempt, 'net.connman.iwd.Aborted', 'Operation aborted')

    # -- BusInterface --------------------------------------------------------

    def connect(self) -> None:
        if not self.reachable:
            raise TransportError('net.connman.iwd is not running')
        self.connected = True
        self._stream = EventStream()

    def close(self) -> None:
        self.connected = False
        self._stream.close()

    def subscribe(self) -> EventStream:
        return self._stream

    def post(self, event) -> None:
        self._stream.put(event)

    def export_object(self, path, introspection_xml, handler) -> None:
        self.agent_handler = handler

    def unexport_object(self, path) -> None:
        self.agent_handler = None

    def call(self, path, interface, method, signature=None, args=(),
             timeout_ms=None) -> tuple:
        if not self.reachable:
            raise TransportError('net.connman.iwd is not running')
        args = tuple(args)
        self.calls.append((path, interface, method, args))
        with self._lock:
            if interface == OBJECT_MANAGER_IFACE and method == 'GetManagedObjects':
                return (copy.deepcopy(self.objects),)
            if interface == PROPERTIES_IFACE:
                return self._properties(path, method, args)
            if path not in self.objects and interface != AGENT_MANAGER_IFACE:
                raise CallError(f'No object at {path}',
                                name='org.freedesktop.DBus.Error.UnknownObject',
                                kind=MALFORMED)
            handler = getattr(self, f'_{interface.rsplit(".", 1)[-1]}_{method}', None)
        if handler is None:
            raise CallError(f'Unknown method {interface}.{method}',
                            name='org.freedesktop.DBus.Error.UnknownMethod',
                            kind=MALFORMED)
        return handler(path, *args)

    def call_async(self, path, interface, method, signature=None, args=(),
                   timeout_ms=None) -> None:
        if not self.reachable:
            raise TransportError('net.connman.iwd is not running')
        args = tuple(args)
        self.calls.append((path, interface, method, args))
        if interface == NETWORK_IFACE and method == 'Connect':
            self._start_connect(path, path, interface, method)
        elif interface == STATION_IFACE and method == 'ConnectHiddenNetwork':
            target = self._find_network(path, args[0])
            if target is None:
                self.post(CallFinished(path, interface, method,
                                       'net.connman.iwd.NotFound',
                                       'Network not found'))
            else:
                self._start_connect(target, path, interface, method)
        else:
            try:
                self.call(path, interface, method, signature, args)
                self.post(CallFinished(path, interface, method))
            except CallError as e:
                self.post(CallFinished(path, interface, method, e.name, e.message))

    # -- Simulated methods ---------------------------------------------------

    def _properties(self, path, method, args):
        if method == 'Get':
            interface, name = args
            return (self.objects[path][interface][name],)
        if method == 'Set':
            interface, name, value = args
            self._set_property(path, interface, name, value)
            return ()
        raise CallError(f'Unknown method {method}',
                        name='org.freedesktop.DBus.Error.UnknownMethod',
                        kind=MALFORMED)

    def _set_property(self, path, interface, name, value):
        if interface == DEVICE_IFACE and name == 'Mode':
            self._switch_mode(path, value)
        elif interface == DEVICE_IFACE and name == 'Powered':
            self._set(path, interface, Powered=bool(value))
            if not value:
                self.emit(ObjectRemoved(path, (STATION_IFACE, ACCESS_POINT_IFACE)))
            elif self.objects[path][DEVICE_IFACE].get('Mode') == 'ap':
                self.emit(ObjectAdded(path, {ACCESS_POINT_IFACE: {'Started': False}}))
            else:
                self.emit(ObjectAdded(path, {STATION_IFACE: {
                    'State': 'disconnected', 'Scanning': False}}))
        else:
            self._set(path, interface, **{name: value})

    def _switch_mode(self, device, mode):
        self._set(device, DEVICE_IFACE, Mode=mode)
        if mode == 'ap':
            self.emit(ObjectRemoved(device, (STATION_IFACE,)))
            self.emit(ObjectAdded(device, {ACCESS_POINT_IFACE: {'Started': False}}))
        else:
            self.emit(ObjectRemoved(device, (ACCESS_POINT_IFACE,)))
            self.emit(ObjectAdded(device, {STATION_IFACE: {
                'State': 'disconnected', 'Scanning': False}}))

    def _Station_GetOrderedNetworks(self, device):
        ordered = [(path, dbm) for path, dbm in self.signals.items()
                   if self.objects.get(path, {}).get(NETWORK_IFACE, {})
                   .get('Device') == device]
        ordered.sort(key=lambda item: -item[1])
        return (ordered,)

    def _Station_Scan(self, device):
        if self.objects[device][STATION_IFACE].get('Scanning'):
            raise CallError('Operation already in progress',
                            name='net.connman.iwd.Busy', kind='transient')
        if self.scan_reply_first:
            self.requested_scans.append(device)
        else:
            self.begin_scan(device)
        return ()

    def _Station_Disconnect(self, device):
        station = self.objects[device][STATION_IFACE]
        network = station.get('ConnectedNetwork')
        if station.get('State') == 'disconnected' and not network:
            raise CallError('Not connected', name='net.connman.iwd.NotConnected')
        if network:
            self._set(network, NETWORK_IFACE, Connected=False)
        self._set(device, STATION_IFACE, State='disconnecting')
        self.emit(PropertiesChanged(device, STATION_IFACE,
                                    {'State': 'disconnected'},
                                    ('ConnectedNetwork',)))
        return ()

    def _KnownNetwork_Forget(self, path):
        for net_path, ifaces in list(self.objects.items()):
            props = ifaces.get(NETWORK_IFACE)
            if props and props.get('KnownNetwork') == path:
                self.emit(PropertiesChanged(net_path, NETWORK_IFACE, {},
                                            ('KnownNetwork',)))
        self.emit(ObjectRemoved(path, (KNOWN_NETWORK_IFACE,)))
        return ()

    def _AccessPoint_Start(self, device, ssid, psk):
        if len(psk) < 8:
            raise CallError('Invalid passphrase',
                            name='net.connman.iwd.InvalidArguments',
                            kind=MALFORMED)
        self._set(device, ACCESS_POINT_IFACE, Started=True, Name=ssid,
                  Frequency=2412)
        return ()

    def _AccessPoint_Stop(self, device):
        self.emit(PropertiesChanged(device, ACCESS_POINT_IFACE,
                                    {'Started': False}, ('Name', 'Frequency')))
        return ()

    def _AgentManager_RegisterAgent(self, _path, agent_path):
        if self.agent_path is not None:
            raise CallError('Agent already registered',
                            name='net.connman.iwd.AlreadyExists')
        self.agent_path = agent_path
        return ()

    def _AgentManager_UnregisterAgent(self, _path, agent_path):
        if self.agent_path != agent_path:
            raise CallError('No agent registered', name='net.connman.iwd.NotFound')
        self.agent_path = None
        return ()

    # -- Connect handshake ---------------------------------------------------

    def _find_network(self, device, ssid):
        for path, ifaces in self.objects.items():
            props = ifaces.get(NETWORK_IFACE)
            if props and props.get('Device') == device and props.get('Name') == ssid:
                return path
        return None

    def _start_connect(self, network_path, call_path, interface, method):
        finish = CallFinished(call_path, interface, method)
        attempt = {'path': network_path, 'finish': finish}
        error = self.connect_errors.pop(network_path, None)
        if error is not None:
            self._fail(attempt, *error)
            return
        props = self.objects[network_path][NETWORK_IFACE]
        needs_secret = props['Type'] in _AUTH_METHODS and (
            not props.get('KnownNetwork') or network_path in self.passphrases)
        if not needs_secret:
            self._complete(attempt)
            return
        if self.agent_path is None or self.agent_handler is None:
            self._fail(attempt, 'net.connman.iwd.NoAgent', 'No Agent registered')
            return
        reply = _MockReply(self, attempt)
        self._auth_attempt = attempt
        self.agent_replies.append(reply)
        self.agent_handler(_AUTH_METHODS[props['Type']], (network_path,), reply)

    def _on_secret(self, attempt, values):
        self._auth_attempt = None
        path = attempt['path']
        expected = self.passphrases.get(path)
        device = self.objects[path][NETWORK_IFACE]['Device']
        self._set(device, STATION_IFACE, State='connecting')
        if expected is not None and values[-1] != expected:
            self._set(device, STATION_IFACE, State='disconnected')
            self._fail(attempt, 'net.connman.iwd.Failed', 'invalid-passphrase')
            return
        self.passphrases.pop(path, None)
        self._complete(attempt)

    def _on_secret_refused(self, attempt, name):
        if self._auth_attempt is not attempt:
            return
        self._auth_attempt = None
        self._fail(attempt, 'net.connman.iwd.Aborted', 'Operation aborted')

    def _fail(self, attempt, name, message):
        finish = attempt['finish']
        self.post(CallFinished(finish.path, finish.interface, finish.method,
                               name, message))

    def _complete(self, attempt):
        path = attempt['path']
        props = self.objects[path][NETWORK_IFACE]
        device = props['Device']
        previous = self.objects[device][STATION_IFACE].get('ConnectedNetwork')
        if previous and previous != path and previous in self.objects:
            self._set(previous, NETWORK_IFACE, Connected=False)
        self._set(device, STATION_IFACE, State='connecting',
                  ConnectedNetwork=path)
        if path in self.stalled:
            return
        if not props.get('KnownNetwork'):
            known = f'{IWD_PREFIX}/{_ssid_hex(props["Name"])}_{props["Type"]}'
            self.emit(ObjectAdded(known, {KNOWN_NETWORK_IFACE: {
                'Name': props['Name'], 'Type': props['Type'], 'Hidden': False,
                'AutoConnect': True,
                'LastConnectedTime': '2024-01-01T00:00:00Z'}}))
            self._set(path, NETWORK_IFACE, KnownNetwork=known)
        self._set(path, NETWORK_IFACE, Connected=True)
        self._set(device, STATION_IFACE, State='connected')
        self.post(attempt['finish'])


def demo_bus() -> MockIwdBus:
    """Return a MockIwdBus populated with a handful of networks."""
    bus = MockIwdBus()
    device = bus.add_adapter('wlan0')
    home = bus.add_network(device, 'HomeNet', 'psk', dbm=-4200, known=True)
    bus.add_network(device, 'CoffeeShop', 'open', dbm=-6100)
    bus.add_network(device, 'Neighbor', 'psk', dbm=-7300, passphrase='hunter22')
    bus.add_network(device, 'Campus', '8021x', dbm=-6800)
    bus.add_known_network('Office', 'psk', autoconnect=False)
    bus.set_connected(device, home)
    return bus


# ---------------------------------------------------------------------------
# Scripted selector
# ---------------------------------------------------------------------------

# Response that keeps the selector open until the controller cancels it
HOLD = object()


class ScriptedHandle(SelectorHandle):

    def __init__(self, result: Optional[str], hold: bool = False):
        self._result = result
        self._done = threading.Event()
        self.cancelled = False
        if not hold:
            self._done.set()

    def poll(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        self._done.wait(timeout)
        return self.poll()

    def output(self) -> Optional[str]:
        return self._result if self.poll() else None

    def cancel(self) -> None:
        if not self._done.is_set():
            self.cancelled = True
            self._result = None
            self._done.set()


class ScriptedSelector(SelectorInterface):
    """Answers pages from a list of responses.

    Each response is a string (matched against entry texts, exactly or
    as a substring, or returned as-is on free-text pages), None (dismiss),
    HOLD, or a callable taking the page and returning one of those.
    Once the script runs out every page is dismissed.
    """

    def __init__(self, responses=()):
        self.responses: List[Any] = list(responses)
        self.pages: List[MenuPage] = []
        self.handles: List[ScriptedHandle] = []

    def open(self, page: MenuPage) -> ScriptedHandle:
        self.pages.append(page)
        response = self.responses.pop(0) if self.responses else None
        if callable(response):
            response = response(page)
        if response is HOLD:
            handle = ScriptedHandle(None, hold=True)
        else:
            handle = ScriptedHandle(self._resolve(page, response))
        self.handles.append(handle)
        return handle

    @staticmethod
    def _resolve(page: MenuPage, response: Optional[str]) -> Optional[str]:
        if response is None or page.free_text:
            return response
        for entry in page.entries:
            if entry.text == response:
                return entry.text
        for entry in page.entries:
            if entry.tag is not None and response in entry.text:
                return entry.text
        return response
