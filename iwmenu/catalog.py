"""iwmenu - Network catalog.

In-memory model of iwd's adapters, stations, networks and known networks.
The catalog keeps iwd's object table ({path: {interface: {property: value}}})
and derives Adapter / Network / ConnectionState views from it on every
read, so network identity is stable across refreshes by construction.

The table is mutated only by apply_event(), which never performs I/O.
Commands (scan, connect, forget, ...) are thin pass-throughs to the bus;
their consequences come back as events.
"""

import copy
import logging
from typing import Any, Dict, List, Optional, Union

from .config import (
    ACCESS_POINT_IFACE,
    ADAPTER_IFACE,
    CONNECT_CALL_TIMEOUT_MS,
    DEVICE_IFACE,
    KNOWN_NETWORK_IFACE,
    NETWORK_IFACE,
    SIGNAL_THRESHOLDS,
    STATION_IFACE,
)
from .errors import CallError, StaleSelectionError, failure_reason
from .interfaces import BusInterface
from .models import (
    AccessPointState,
    Adapter,
    CallFinished,
    CatalogSnapshot,
    ConnectionKind,
    ConnectionState,
    Network,
    NetworkKey,
    ObjectAdded,
    ObjectRemoved,
    PropertiesChanged,
    ScanState,
    Security,
)

log = logging.getLogger(__name__)

AdapterRef = Union[Adapter, str]

_STATION_KINDS = {
    'connected': ConnectionKind.CONNECTED,
    'roaming': ConnectionKind.CONNECTED,
    'connecting': ConnectionKind.CONNECTING,
    'disconnecting': ConnectionKind.DISCONNECTING,
    'disconnected': ConnectionKind.DISCONNECTED,
}


def signal_ordinal(dbm: int) -> int:
    """Convert iwd's signal strength (100 * dBm) to a 0-4 ordinal."""
    for threshold, ordinal in SIGNAL_THRESHOLDS:
        if dbm >= threshold:
            return ordinal
    return 0


def sort_networks(networks: List[Network]) -> List[Network]:
    """Order networks for display.

    Connected network first, then known networks by descending signal,
    then unknown networks by descending signal; ties by SSID.
    """
    return sorted(
        networks,
        key=lambda n: (not n.connected, not n.known, -n.signal, n.ssid),
    )


def _path(adapter: AdapterRef) -> str:
    return adapter.path if isinstance(adapter, Adapter) else adapter


class NetworkCatalog:
    """Live model of the daemon's wireless state."""

    def __init__(self, bus: BusInterface):
        self._bus = bus
        self._objects: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._signals: Dict[str, int] = {}
        self._failures: Dict[str, str] = {}
        self.generation = 0

    # -- Refresh -------------------------------------------------------------

    def refresh(self) -> None:
        """Re-enumerate the daemon's objects and merge them in.

        Raises:
            TransportError: If the daemon is gone.
            CallError: If the object table cannot be read.
        """
        objects = self._bus.get_managed_objects()
        signals: Dict[str, int] = {}
        for path, interfaces in objects.items():
            if STATION_IFACE not in interfaces:
                continue
            try:
                (ordered,) = self._bus.call(path, STATION_IFACE,
                                            'GetOrderedNetworks')
            except CallError as e:
                log.warning('GetOrderedNetworks failed on %s: %s', path, e)
                continue
            for network_path, strength in ordered:
                signals[network_path] = int(strength)
        self.apply_event(CatalogSnapshot(objects, signals))

    # -- State transitions ---------------------------------------------------

    def apply_event(self, event) -> bool:
        """Apply one IPC event to the model.

        Returns:
            True if the model changed. The generation counter is bumped on
            every change so renders can detect staleness.
        """
        if isinstance(event, CatalogSnapshot):
            changed = self._apply_snapshot(event)
        elif isinstance(event, ObjectAdded):
            changed = self._apply_added(event)
        elif isinstance(event, ObjectRemoved):
            changed = self._apply_removed(event)
        elif isinstance(event, PropertiesChanged):
            changed = self._apply_properties(event)
        elif isinstance(event, CallFinished):
            changed = self._apply_call_finished(event)
        else:
            changed = False
        if changed:
            self.generation += 1
        return changed

    def _apply_snapshot(self, event: CatalogSnapshot) -> bool:
        objects = copy.deepcopy(event.objects)
        signals = dict(event.signals)
        if objects == self._objects and signals == self._signals:
            return False
        self._objects = objects
        self._signals = signals
        # Failures of adapters that disappeared are meaningless now
        for path in list(self._failures):
            if path not in objects:
                del self._failures[path]
        return True

    def _apply_added(self, event: ObjectAdded) -> bool:
        entry = self._objects.setdefault(event.path, {})
        for interface, props in event.interfaces.items():
            entry[interface] = dict(props)
        return bool(event.interfaces)

    def _apply_removed(self, event: ObjectRemoved) -> bool:
        entry = self._objects.get(event.path)
        if entry is None:
            return False
        changed = False
        for interface in event.interfaces:
            if entry.pop(interface, None) is not None:
                changed = True
        if not entry:
            del self._objects[event.path]
            self._signals.pop(event.path, None)
            self._failures.pop(event.path, None)
        return changed

    def _apply_properties(self, event: PropertiesChanged) -> bool:
        entry = self._objects.get(event.path)
        if entry is None:
            return False
        props = entry.setdefault(event.interface, {})
        changed = False
        for name, value in event.changed.items():
            if props.get(name) != value or name not in props:
                props[name] = value
                changed = True
        for name in event.invalidated:
            if name in props:
                del props[name]
                changed = True
        if event.interface == STATION_IFACE and \
                event.changed.get('State') in ('connecting', 'connected'):
            if self._failures.pop(event.path, None) is not None:
                changed = True
        return changed

    def _apply_call_finished(self, event: CallFinished) -> bool:
        if event.method == 'Connect' and event.interface == NETWORK_IFACE:
            device = self._props(event.path, NETWORK_IFACE).get('Device', '')
        elif event.method == 'ConnectHiddenNetwork':
            device = event.path
        else:
            return False
        if not device:
            return False
        if event.ok:
            return self._failures.pop(device, None) is not None
        self._failures[device] = failure_reason(event.error_name,
                                                event.error_message)
        return True

    # -- Read model ----------------------------------------------------------

    def _props(self, path: str, interface: str) -> Dict[str, Any]:
        return self._objects.get(path, {}).get(interface, {})

    def adapters(self) -> List[Adapter]:
        """Return every wireless interface the daemon manages."""
        adapters = []
        for path in sorted(self._objects):
            device = self._props(path, DEVICE_IFACE)
            if not device:
                continue
            phy_path = device.get('Adapter', '')
            phy = self._props(phy_path, ADAPTER_IFACE)
            adapters.append(Adapter(
                path=path,
                name=device.get('Name', ''),
                mode=device.get('Mode', 'station'),
                powered=bool(device.get('Powered', False)),
                address=device.get('Address', ''),
                phy_path=phy_path,
                phy_name=phy.get('Name', ''),
                model=phy.get('Model', ''),
                vendor=phy.get('Vendor', ''),
                supported_modes=list(phy.get('SupportedModes', [])),
            ))
        adapters.sort(key=lambda a: (a.name, a.path))
        return adapters

    def adapter(self, path: str) -> Optional[Adapter]:
        for adapter in self.adapters():
            if adapter.path == path:
                return adapter
        return None

    def scan_state(self, adapter: AdapterRef) -> ScanState:
        station = self._props(_path(adapter), STATION_IFACE)
        return ScanState.SCANNING if station.get('Scanning') else ScanState.IDLE

    def has_station(self, adapter: AdapterRef) -> bool:
        return bool(self._props(_path(adapter), STATION_IFACE))

    def _network_from_path(self, path: str) -> Optional[Network]:
        props = self._props(path, NETWORK_IFACE)
        if not props:
            return None
        known_path = props.get('KnownNetwork', '') or ''
        known = self._props(known_path, KNOWN_NETWORK_IFACE) if known_path else {}
        dbm = self._signals.get(path, -10000)
        key = NetworkKey(props.get('Device', ''), props.get('Name', ''),
                         Security.from_iwd(props.get('Type')))
        return Network(
            key=key,
            path=path,
            signal=signal_ordinal(dbm),
            dbm=dbm,
            known=bool(known),
            connected=bool(props.get('Connected', False)),
            autoconnect=bool(known.get('AutoConnect', False)),
            hidden=bool(known.get('Hidden', False)),
            visible=True,
            known_path=known_path if known else '',
            last_connected=known.get('LastConnectedTime', ''),
        )

    def networks(self, adapter: AdapterRef) -> List[Network]:
        """Return visible networks of *adapter*, in display order."""
        device = _path(adapter)
        found = []
        for path in self._objects:
            network = self._network_from_path(path)
            if network is not None and network.key.adapter == device:
                found.append(network)
        return sort_networks(found)

    def known_networks(self, adapter: AdapterRef) -> List[Network]:
        """Return every known network, visible or not, for *adapter*."""
        device = _path(adapter)
        visible = [n for n in self.networks(device) if n.known]
        seen = {n.known_path for n in visible}
        result = list(visible)
        for path in sorted(self._objects):
            props = self._props(path, KNOWN_NETWORK_IFACE)
            if not props or path in seen:
                continue
            hidden = bool(props.get('Hidden', False))
            security = Security.HIDDEN if hidden else Security.from_iwd(props.get('Type'))
            result.append(Network(
                key=NetworkKey(device, props.get('Name', ''), security),
                known=True,
                autoconnect=bool(props.get('AutoConnect', False)),
                hidden=hidden,
                visible=False,
                known_path=path,
                last_connected=props.get('LastConnectedTime', ''),
            ))
        return sort_networks(result)

    def network(self, key: NetworkKey) -> Optional[Network]:
        """Look a network up by identity in the current model."""
        for network in self.known_networks(key.adapter) + self.networks(key.adapter):
            if network.key == key:
                return network
        return None

    def connection_state(self, adapter: AdapterRef) -> ConnectionState:
        device = _path(adapter)
        station = self._props(device, STATION_IFACE)
        kind = _STATION_KINDS.get(station.get('State', 'disconnected'),
                                  ConnectionKind.DISCONNECTED)
        connected_path = station.get('ConnectedNetwork', '') or ''
        network = self._network_from_path(connected_path) if connected_path else None
        key = network.key if network else None
        if kind == ConnectionKind.DISCONNECTED and device in self._failures:
            return ConnectionState.failed(self._failures[device])
        return ConnectionState(kind, key)

    def access_point(self, adapter: AdapterRef) -> Optional[AccessPointState]:
        props = self._props(_path(adapter), ACCESS_POINT_IFACE)
        if not props:
            return None
        return AccessPointState(
            started=bool(props.get('Started', False)),
            ssid=props.get('Name', '') or '',
            frequency=int(props.get('Frequency', 0) or 0),
        )

    # -- Commands ------------------------------------------------------------

    def _require_visible(self, adapter: AdapterRef, network: Network) -> Network:
        current = self.network(network.key)
        if current is None or not current.visible or \
                current.key.adapter != _path(adapter):
            raise StaleSelectionError(f'{network.ssid} is no longer visible')
        return current

    def start_scan(self, adapter: AdapterRef) -> None:
        self._bus.call(_path(adapter), STATION_IFACE, 'Scan')

    def connect(self, adapter: AdapterRef, network: Network) -> str:
        """Start connecting; the outcome arrives as events.

        Returns:
            The daemon handle of the network being connected.
        """
        current = self._require_visible(adapter, network)
        self._bus.call_async(current.path, NETWORK_IFACE, 'Connect',
                             timeout_ms=CONNECT_CALL_TIMEOUT_MS)
        return current.path

    def connect_hidden(self, adapter: AdapterRef, ssid: str) -> str:
        device = _path(adapter)
        self._bus.call_async(device, STATION_IFACE, 'ConnectHiddenNetwork',
                             '(s)', (ssid,), timeout_ms=CONNECT_CALL_TIMEOUT_MS)
        return device

    def disconnect(self, adapter: AdapterRef) -> None:
        self._bus.call(_path(adapter), STATION_IFACE, 'Disconnect')

    def _require_known(self, network: Network) -> Network:
        current = self.network(network.key)
        if current is None or not current.known_path:
            raise StaleSelectionError(f'{network.ssid} is not a known network')
        return current

    def forget(self, network: Network) -> None:
        current = self._require_known(network)
        self._bus.call(current.known_path, KNOWN_NETWORK_IFACE, 'Forget')

    def set_autoconnect(self, network: Network, enabled: bool) -> None:
        current = self._require_known(network)
        self._bus.set_property(current.known_path, KNOWN_NETWORK_IFACE,
                               'AutoConnect', 'b', enabled)

    def set_powered(self, adapter: AdapterRef, on: bool) -> None:
        self._bus.set_property(_path(adapter), DEVICE_IFACE, 'Powered', 'b', on)

    def set_mode(self, adapter: AdapterRef, mode: str) -> None:
        self._bus.set_property(_path(adapter), DEVICE_IFACE, 'Mode', 's', mode)

    def start_access_point(self, adapter: AdapterRef, ssid: str, psk: str) -> None:
        self._bus.call(_path(adapter), ACCESS_POINT_IFACE, 'Start', '(ss)',
                       (ssid, psk))

    def stop_access_point(self, adapter: AdapterRef) -> None:
        self._bus.call(_path(adapter), ACCESS_POINT_IFACE, 'Stop')
