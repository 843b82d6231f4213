#!/usr/bin/env python3
"""
Tests for the iwmenu network catalog.

The catalog is driven by MockIwdBus: commands go out as daemon calls and
their consequences come back as events, which are applied in order.
"""

import unittest

from test_helpers import REPO_DIR  # noqa: F401

from iwmenu.catalog import NetworkCatalog, signal_ordinal, sort_networks
from iwmenu.config import KNOWN_NETWORK_IFACE, NETWORK_IFACE, PROPERTIES_IFACE, STATION_IFACE
from iwmenu.errors import StaleSelectionError
from iwmenu.mock_backend import MockIwdBus
from iwmenu.models import (
    CallFinished,
    ConnectionKind,
    Network,
    NetworkKey,
    ObjectRemoved,
    PropertiesChanged,
    ScanState,
    Security,
)


def _apply_all(bus, catalog):
    for event in bus.subscribe().drain():
        catalog.apply_event(event)


class CatalogTestCase(unittest.TestCase):

    def setUp(self):
        self.bus = MockIwdBus()
        self.device = self.bus.add_adapter("wlan0", model="AX210")
        self.home = self.bus.add_network(self.device, "Home", "psk", dbm=-6000,
                                         known=True)
        self.cafe = self.bus.add_network(self.device, "Cafe", "open", dbm=-5500)
        self.strong = self.bus.add_network(self.device, "Strong", "psk", dbm=-3000)
        self.office = self.bus.add_known_network("Office", "psk")
        self.catalog = NetworkCatalog(self.bus)
        self.catalog.refresh()

    def ssids(self, networks):
        return [n.ssid for n in networks]


class TestSignal(unittest.TestCase):
    """Tests for signal_ordinal and sort_networks."""

    def test_ordinal(self):
        self.assertEqual(signal_ordinal(-4000), 4)
        self.assertEqual(signal_ordinal(-5500), 3)
        self.assertEqual(signal_ordinal(-9000), 0)

    def test_sort_order(self):
        key = lambda s: NetworkKey("/d", s, Security.PSK)  # noqa: E731
        networks = [
            Network(key("weak-known"), signal=1, known=True),
            Network(key("b-strong"), signal=4),
            Network(key("a-strong"), signal=4),
            Network(key("connected"), signal=0, connected=True, known=True),
        ]
        self.assertEqual([n.ssid for n in sort_networks(networks)],
                         ["connected", "weak-known", "a-strong", "b-strong"])


class TestReadModel(CatalogTestCase):
    """Tests for the derived views."""

    def test_adapters(self):
        (adapter,) = self.catalog.adapters()
        self.assertEqual(adapter.path, self.device)
        self.assertEqual(adapter.name, "wlan0")
        self.assertEqual(adapter.display_name, "wlan0 (AX210)")
        self.assertTrue(adapter.powered)
        self.assertEqual(adapter.mode, "station")

    def test_networks_ordered_known_first(self):
        self.assertEqual(self.ssids(self.catalog.networks(self.device)),
                         ["Home", "Strong", "Cafe"])

    def test_network_fields(self):
        home = self.catalog.networks(self.device)[0]
        self.assertTrue(home.known)
        self.assertTrue(home.autoconnect)
        self.assertEqual(home.path, self.home)
        self.assertEqual(home.dbm, -6000)
        self.assertEqual(home.security, Security.PSK)
        self.assertTrue(home.known_path)

    def test_known_networks_include_out_of_range(self):
        known = self.catalog.known_networks(self.device)
        self.assertEqual(self.ssids(known), ["Home", "Office"])
        office = known[1]
        self.assertFalse(office.visible)
        self.assertEqual(office.known_path, self.office)

    def test_hidden_known_network(self):
        self.bus.add_known_network("Secret", "psk", hidden=True)
        self.catalog.refresh()
        secret = [n for n in self.catalog.known_networks(self.device)
                  if n.ssid == "Secret"][0]
        self.assertEqual(secret.security, Security.HIDDEN)

    def test_lookup_by_key(self):
        key = NetworkKey(self.device, "Cafe", Security.OPEN)
        self.assertEqual(self.catalog.network(key).path, self.cafe)
        self.assertIsNone(self.catalog.network(
            NetworkKey(self.device, "Cafe", Security.PSK)))

    def test_identity_stable_across_refresh(self):
        before = [n.key for n in self.catalog.networks(self.device)]
        generation = self.catalog.generation
        self.catalog.refresh()
        self.assertEqual([n.key for n in self.catalog.networks(self.device)], before)
        self.assertEqual(self.catalog.generation, generation)

    def test_initial_connection_state(self):
        state = self.catalog.connection_state(self.device)
        self.assertEqual(state.kind, ConnectionKind.DISCONNECTED)
        self.assertIsNone(state.network)


class TestEvents(CatalogTestCase):
    """Tests for apply_event."""

    def test_replay_matches_fresh_refresh(self):
        self.bus.connect()
        self.catalog.connect(self.device, self.catalog.network(
            NetworkKey(self.device, "Cafe", Security.OPEN)))
        _apply_all(self.bus, self.catalog)

        fresh = NetworkCatalog(self.bus)
        fresh.refresh()
        self.assertEqual(self.catalog.networks(self.device),
                         fresh.networks(self.device))
        self.assertEqual(self.catalog.known_networks(self.device),
                         fresh.known_networks(self.device))
        self.assertEqual(self.catalog.connection_state(self.device),
                         fresh.connection_state(self.device))

    def test_connected_after_connect(self):
        self.bus.connect()
        cafe = self.catalog.network(NetworkKey(self.device, "Cafe", Security.OPEN))
        self.catalog.connect(self.device, cafe)
        _apply_all(self.bus, self.catalog)
        state = self.catalog.connection_state(self.device)
        self.assertEqual(state.kind, ConnectionKind.CONNECTED)
        self.assertEqual(state.network, cafe.key)
        self.assertEqual(self.ssids(self.catalog.networks(self.device))[0], "Cafe")

    def test_generation_bumps_on_change(self):
        generation = self.catalog.generation
        changed = self.catalog.apply_event(PropertiesChanged(
            self.device, STATION_IFACE, {"Scanning": True}))
        self.assertTrue(changed)
        self.assertEqual(self.catalog.generation, generation + 1)
        self.assertEqual(self.catalog.scan_state(self.device), ScanState.SCANNING)

    def test_unknown_object_ignored(self):
        self.assertFalse(self.catalog.apply_event(PropertiesChanged(
            "/nowhere", STATION_IFACE, {"Scanning": True})))

    def test_object_removed(self):
        self.catalog.apply_event(ObjectRemoved(self.cafe, (NETWORK_IFACE,)))
        self.assertNotIn("Cafe", self.ssids(self.catalog.networks(self.device)))

    def test_invalidated_property(self):
        self.catalog.apply_event(PropertiesChanged(
            self.home, NETWORK_IFACE, {}, ("KnownNetwork",)))
        home = [n for n in self.catalog.networks(self.device) if n.ssid == "Home"][0]
        self.assertFalse(home.known)

    def test_failed_connect_recorded(self):
        self.catalog.apply_event(CallFinished(
            self.cafe, NETWORK_IFACE, "Connect", "net.connman.iwd.Failed",
            "invalid-passphrase"))
        state = self.catalog.connection_state(self.device)
        self.assertEqual(state.kind, ConnectionKind.FAILED)
        self.assertEqual(state.reason, "invalid-passphrase")

    def test_failure_cleared_by_next_attempt(self):
        self.catalog.apply_event(CallFinished(
            self.cafe, NETWORK_IFACE, "Connect", "net.connman.iwd.Aborted", ""))
        self.catalog.apply_event(PropertiesChanged(
            self.device, STATION_IFACE, {"State": "connecting"}))
        self.assertEqual(self.catalog.connection_state(self.device).kind,
                         ConnectionKind.CONNECTING)

    def test_hidden_connect_failure_recorded_on_device(self):
        self.catalog.apply_event(CallFinished(
            self.device, STATION_IFACE, "ConnectHiddenNetwork",
            "net.connman.iwd.NotFound", "Network not found"))
        self.assertEqual(self.catalog.connection_state(self.device).reason,
                         "Network not found")


class TestCommands(CatalogTestCase):
    """Tests for the daemon calls issued by catalog commands."""

    def test_scan(self):
        self.bus.auto_finish_scan = False
        self.catalog.start_scan(self.device)
        _apply_all(self.bus, self.catalog)
        self.assertEqual(self.catalog.scan_state(self.device), ScanState.SCANNING)
        self.bus.finish_scan(self.device)
        _apply_all(self.bus, self.catalog)
        self.assertEqual(self.catalog.scan_state(self.device), ScanState.IDLE)

    def test_connect_invisible_is_stale(self):
        office = self.catalog.known_networks(self.device)[1]
        with self.assertRaises(StaleSelectionError):
            self.catalog.connect(self.device, office)

    def test_connect_vanished_is_stale(self):
        cafe = self.catalog.network(NetworkKey(self.device, "Cafe", Security.OPEN))
        self.catalog.apply_event(ObjectRemoved(self.cafe, (NETWORK_IFACE,)))
        with self.assertRaises(StaleSelectionError):
            self.catalog.connect(self.device, cafe)

    def test_connect_hidden_call(self):
        self.catalog.connect_hidden(self.device, "Ghost")
        self.assertIn((self.device, STATION_IFACE, "ConnectHiddenNetwork",
                       ("Ghost",)), self.bus.calls)

    def test_forget(self):
        self.bus.connect()
        home = self.catalog.network(NetworkKey(self.device, "Home", Security.PSK))
        self.catalog.forget(home)
        _apply_all(self.bus, self.catalog)
        self.assertEqual(self.ssids(self.catalog.known_networks(self.device)),
                         ["Office"])
        self.assertFalse(self.catalog.network(home.key).known)

    def test_forget_unknown_is_stale(self):
        cafe = self.catalog.network(NetworkKey(self.device, "Cafe", Security.OPEN))
        with self.assertRaises(StaleSelectionError):
            self.catalog.forget(cafe)

    def test_set_autoconnect(self):
        self.bus.connect()
        home = self.catalog.network(NetworkKey(self.device, "Home", Security.PSK))
        self.catalog.set_autoconnect(home, False)
        self.assertIn((home.known_path, PROPERTIES_IFACE, "Set",
                       (KNOWN_NETWORK_IFACE, "AutoConnect", False)), self.bus.calls)
        _apply_all(self.bus, self.catalog)
        self.assertFalse(self.catalog.network(home.key).autoconnect)

    def test_set_powered_off_removes_station(self):
        self.bus.connect()
        self.catalog.set_powered(self.device, False)
        _apply_all(self.bus, self.catalog)
        self.assertFalse(self.catalog.adapter(self.device).powered)
        self.assertFalse(self.catalog.has_station(self.device))

    def test_mode_switch_and_access_point(self):
        self.bus.connect()
        self.catalog.set_mode(self.device, "ap")
        _apply_all(self.bus, self.catalog)
        self.assertEqual(self.catalog.adapter(self.device).mode, "ap")
        self.assertFalse(self.catalog.access_point(self.device).started)

        self.catalog.start_access_point(self.device, "MyAP", "secret123")
        _apply_all(self.bus, self.catalog)
        ap = self.catalog.access_point(self.device)
        self.assertTrue(ap.started)
        self.assertEqual(ap.ssid, "MyAP")

        self.catalog.stop_access_point(self.device)
        _apply_all(self.bus, self.catalog)
        self.assertFalse(self.catalog.access_point(self.device).started)


if __name__ == "__main__":
    unittest.main()
