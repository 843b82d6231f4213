"""iwmenu - Menu page builders.

Turns catalog state into immutable MenuPage objects. Every selectable
line carries an Action tag; network lines carry the NetworkKey, never a
list index, so a selection is resolved against the catalog as it is when
the launcher returns.
"""

from dataclasses import dataclass
from typing import Any, List, Optional

from .icons import (
    format_line,
    get_icon,
    known_network_icon_key,
    network_label,
    signal_icon_key,
)
from .models import AccessPointState, Adapter, MenuEntry, MenuPage, Network, NetworkKey
from .translations import get_text

# Action kinds
SCAN = 'scan'
KNOWN_NETWORKS = 'known_networks'
HIDDEN_NETWORK = 'hidden_network'
SETTINGS = 'settings'
NETWORK = 'network'
KNOWN_NETWORK = 'known_network'
ENABLE_AUTOCONNECT = 'enable_autoconnect'
DISABLE_AUTOCONNECT = 'disable_autoconnect'
FORGET_NETWORK = 'forget_network'
DISABLE_ADAPTER = 'disable_adapter'
SWITCH_MODE = 'switch_mode'
POWER_ON_DEVICE = 'power_on_device'
START_AP = 'start_ap'
STOP_AP = 'stop_ap'
SET_SSID = 'set_ssid'
SET_PASSWORD = 'set_password'
ADAPTER = 'adapter'


@dataclass(frozen=True)
class Action:
    """Tag attached to a selectable menu line."""
    kind: str
    key: Optional[NetworkKey] = None
    value: Any = None


class MenuBuilder:
    """Builds pages for one icon style and language."""

    def __init__(self, icon_type: str = 'font', spaces: int = 1,
                 language: str = 'English'):
        self.icon_type = icon_type
        self.spaces = spaces
        self.language = language

    def text(self, key: str, **fmt) -> str:
        return get_text(key, self.language, **fmt)

    def entry(self, icon_key: str, text: str, action: Optional[Action]) -> MenuEntry:
        line, display = format_line(text, get_icon(icon_key, self.icon_type),
                                    self.icon_type, self.spaces)
        return MenuEntry(line, display, action)

    def _option(self, kind: str, **kw) -> MenuEntry:
        return self.entry(kind, self.text(kind), Action(kind, **kw))

    def network_entry(self, network: Network) -> MenuEntry:
        label = network_label(network.ssid, network.connected, self.icon_type,
                              self.spaces)
        icon_key = signal_icon_key(network.dbm, network.security)
        return self.entry(icon_key, label, Action(NETWORK, network.key))

    # -- Pages ---------------------------------------------------------------

    def main_page(self, networks: List[Network], scanning: bool = False) -> MenuPage:
        """Scan (or a progress line), Known Networks, networks, Settings."""
        entries = []
        if scanning:
            entries.append(self.entry('scanning', self.text('scanning'), None))
        else:
            entries.append(self._option(SCAN))
        entries.append(self._option(KNOWN_NETWORKS))
        entries.extend(self.network_entry(n) for n in networks)
        entries.append(self._option(HIDDEN_NETWORK))
        entries.append(self._option(SETTINGS))
        return MenuPage(tuple(entries))

    def adapters_page(self, adapters: List[Adapter]) -> MenuPage:
        entries = tuple(
            self.entry('station' if a.mode == 'station' else 'access_point',
                       a.display_name, Action(ADAPTER, value=a.path))
            for a in adapters
        )
        return MenuPage(entries, prompt=self.text('select_adapter'))

    def known_networks_page(self, networks: List[Network]) -> MenuPage:
        entries = []
        for network in networks:
            label = network_label(network.ssid, network.connected,
                                  self.icon_type, self.spaces)
            entries.append(self.entry(known_network_icon_key(network.security),
                                      label, Action(KNOWN_NETWORK, network.key)))
        return MenuPage(tuple(entries))

    def known_options_page(self, network: Network) -> MenuPage:
        toggle = DISABLE_AUTOCONNECT if network.autoconnect else ENABLE_AUTOCONNECT
        return MenuPage((
            self._option(toggle, key=network.key),
            self._option(FORGET_NETWORK, key=network.key),
        ), prompt=network.ssid)

    def settings_page(self, adapter: Adapter) -> MenuPage:
        target = 'ap' if adapter.mode == 'station' else 'station'
        switch = self.entry(SWITCH_MODE, self.text(f'switch_mode_to_{target}'),
                            Action(SWITCH_MODE, value=target))
        return MenuPage((self._option(DISABLE_ADAPTER), switch))

    def power_page(self) -> MenuPage:
        return MenuPage((self._option(POWER_ON_DEVICE),))

    def ap_page(self, ap: Optional[AccessPointState]) -> MenuPage:
        started = ap is not None and ap.started
        return MenuPage((
            self._option(STOP_AP if started else START_AP),
            self._option(SET_SSID),
            self._option(SET_PASSWORD),
            self._option(SETTINGS),
        ), prompt=ap.ssid if started else '')

    def input_page(self, prompt_key: str, password: bool = False, **fmt) -> MenuPage:
        """Free-text entry page; nothing is written to the launcher."""
        return MenuPage((), prompt=self.text(prompt_key, **fmt), free_text=True,
                        password=password)
