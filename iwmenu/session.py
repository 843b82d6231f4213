"""iwmenu - Session controller.

The interactive state machine:

    SELECT_ADAPTER -> SELECT_NETWORK -> (ENTER_SECRET) -> CONNECTING
        -> RESULT -> SELECT_NETWORK ...

EXIT is reached when the launcher is dismissed on the adapter, network,
power or access point page. Every wait is a combined wait over the open
launcher (if any) and the daemon's event stream; events are applied to
the catalog on this thread, in arrival order, before anything is
re-rendered.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from .agent import AuthAgent, AuthRequest, AuthStatus
from .catalog import NetworkCatalog
from .config import (
    AGENT_WAIT_SECONDS,
    CONNECT_TIMEOUT_SECONDS,
    POLL_INTERVAL,
    RESULT_PAUSE_SECONDS,
    Settings,
)
from .errors import (
    CallError,
    ProtocolViolation,
    SelectorError,
    StaleSelectionError,
    TransportError,
    failure_reason,
)
from .interfaces import BusInterface, SelectorHandle, SelectorInterface
from .menu import (
    ADAPTER,
    DISABLE_ADAPTER,
    DISABLE_AUTOCONNECT,
    ENABLE_AUTOCONNECT,
    FORGET_NETWORK,
    HIDDEN_NETWORK,
    KNOWN_NETWORK,
    KNOWN_NETWORKS,
    NETWORK,
    POWER_ON_DEVICE,
    SCAN,
    SET_PASSWORD,
    SET_SSID,
    SETTINGS,
    START_AP,
    STOP_AP,
    SWITCH_MODE,
    MenuBuilder,
)
from .models import (
    Adapter,
    AgentReleased,
    CallFinished,
    ConnectionKind,
    MenuPage,
    Network,
    NetworkKey,
    ScanState,
    ServiceLost,
)
from .notification import Notifier
from .translations import resolve_language

log = logging.getLogger(__name__)


class SessionState(Enum):
    SELECT_ADAPTER = 'select-adapter'
    SELECT_NETWORK = 'select-network'
    ENTER_SECRET = 'enter-secret'
    CONNECTING = 'connecting'
    RESULT = 'result'
    EXIT = 'exit'


# _wait() wake reasons
WAKE_SELECTOR = 'selector'
WAKE_EVENT = 'event'
WAKE_TIMEOUT = 'timeout'

# _show() results
SELECTED = 'selected'
DISMISSED = 'dismissed'
INVALID = 'invalid'
INTERRUPTED = 'interrupted'


@dataclass
class Outcome:
    """Result of one connect attempt."""
    success: bool
    ssid: str
    reason: str = ''


@dataclass
class ConnectAttempt:
    """A connect call in flight and its daemon-side reply."""
    ssid: str
    key: Optional[NetworkKey]
    network_path: Optional[str]
    call_path: str
    method: str
    started: float
    finished: Optional[CallFinished] = None

    def matches_call(self, event: CallFinished) -> bool:
        return event.path == self.call_path and event.method == self.method

    def matches_request(self, request: AuthRequest) -> bool:
        # Hidden networks have no known object path until the daemon asks
        return self.network_path is None or request.network_path == self.network_path


class SessionController:
    """Drives one menu session against the daemon.

    Args:
        bus: Unconnected daemon session.
        selector: Launcher used to render pages.
        settings: Presentation options.
        notifier: Desktop notification sink.
    """

    def __init__(self, bus: BusInterface, selector: SelectorInterface,
                 settings: Optional[Settings] = None,
                 notifier: Optional[Notifier] = None,
                 connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
                 agent_wait: float = AGENT_WAIT_SECONDS,
                 result_pause: float = RESULT_PAUSE_SECONDS):
        settings = settings or Settings()
        self.bus = bus
        self.selector = selector
        self.notifier = notifier or Notifier(settings.notifications)
        self.catalog = NetworkCatalog(bus)
        self.agent = AuthAgent(bus)
        self.menu = MenuBuilder(settings.icon_type, settings.spaces,
                                resolve_language(settings.language))
        self.connect_timeout = connect_timeout
        self.agent_wait = agent_wait
        self.result_pause = result_pause

        self.state = SessionState.SELECT_ADAPTER
        self.history: List[SessionState] = []
        self.outcomes: List[Outcome] = []
        self.adapter_path: Optional[str] = None
        self._events = None
        self._handle: Optional[SelectorHandle] = None
        self._attempt: Optional[ConnectAttempt] = None
        self._scan_pending = False
        self._scan_seen = False
        self._shown_generation = 0
        self._ap_ssid: Optional[str] = None
        self._ap_psk: Optional[str] = None

        self._handlers = {
            SessionState.SELECT_ADAPTER: self._select_adapter,
            SessionState.SELECT_NETWORK: self._select_network,
            SessionState.ENTER_SECRET: self._follow_attempt,
            SessionState.CONNECTING: self._follow_attempt,
            SessionState.RESULT: self._result,
        }

    # -- Lifecycle -----------------------------------------------------------

    def run(self) -> Optional[Outcome]:
        """Run the dialogue until the user dismisses it.

        Returns:
            The last connect outcome, if any.

        Raises:
            TransportError: If the daemon is or becomes unreachable.
            CallError: If the agent cannot be registered.
        """
        self.bus.connect()
        self._events = self.bus.subscribe()
        try:
            self.agent.register()
            self.catalog.refresh()
            self._enter(SessionState.SELECT_ADAPTER)
            while self.state != SessionState.EXIT:
                self._handlers[self.state]()
        finally:
            self.shutdown()
        return self.outcomes[-1] if self.outcomes else None

    def shutdown(self) -> None:
        """Kill the launcher, withdraw the agent and close the bus."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self.agent.unregister()
        self.bus.close()

    def _enter(self, state: SessionState) -> None:
        log.debug('State %s -> %s', self.state.value, state.value)
        self.state = state
        self.history.append(state)

    @property
    def adapter(self) -> Optional[Adapter]:
        if self.adapter_path is None:
            return None
        return self.catalog.adapter(self.adapter_path)

    # -- Events --------------------------------------------------------------

    def _apply(self, event) -> None:
        if isinstance(event, ServiceLost):
            raise TransportError(f'{event.service} left the bus')
        if isinstance(event, AgentReleased):
            raise TransportError('The daemon released the agent')
        self.catalog.apply_event(event)
        if self.adapter_path is not None and \
                self.catalog.scan_state(self.adapter_path) == ScanState.SCANNING:
            self._scan_seen = True
        attempt = self._attempt
        if isinstance(event, CallFinished) and attempt is not None \
                and attempt.matches_call(event):
            attempt.finished = event

    def _sync(self) -> None:
        """Apply every queued event without blocking."""
        for event in self._events.drain():
            self._apply(event)

    def _wait(self, handle: Optional[SelectorHandle] = None,
              until: Optional[Callable[[], object]] = None,
              timeout: Optional[float] = None):
        """Combined wait on the launcher, the event stream and a deadline.

        *until* is evaluated after each applied event; a non-None result
        ends the wait.

        Returns:
            (WAKE_SELECTOR, output), (WAKE_EVENT, value) or
            (WAKE_TIMEOUT, None).
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if handle is not None and handle.poll():
                self._sync()
                return WAKE_SELECTOR, handle.output()
            slice_ = POLL_INTERVAL
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return WAKE_TIMEOUT, None
                slice_ = min(slice_, remaining)
            event = self._events.get(timeout=slice_)
            if event is None:
                continue
            self._apply(event)
            if until is not None:
                value = until()
                if value is not None:
                    return WAKE_EVENT, value

    def _show(self, page: MenuPage, until: Optional[Callable[[], object]] = None):
        """Render *page* and wait for a selection.

        Returns:
            (SELECTED, tag or text), (DISMISSED, None), (INVALID, output) or
            (INTERRUPTED, value) when *until* fired and the launcher was
            terminated.
        """
        self._shown_generation = self.catalog.generation
        try:
            handle = self.selector.open(page)
        except SelectorError as e:
            log.error('%s', e)
            return DISMISSED, None
        # Left set on error so shutdown() kills the launcher
        self._handle = handle
        wake, value = self._wait(handle, until)
        self._handle = None
        if wake == WAKE_EVENT:
            handle.cancel()
            return INTERRUPTED, value
        if value is None:
            return DISMISSED, None
        if page.free_text:
            return SELECTED, value
        entry = page.match(value)
        if entry is None or entry.tag is None:
            log.debug('Ignoring unmatched selection %r', value)
            return INVALID, value
        return SELECTED, entry.tag

    def _ask(self, prompt_key: str, password: bool = False,
             until: Optional[Callable[[], object]] = None, **fmt) -> Optional[str]:
        kind, value = self._show(self.menu.input_page(prompt_key, password, **fmt),
                                 until)
        return value if kind == SELECTED else None

    def _notify(self, key: str, icon: str = 'network_wireless', **fmt) -> None:
        self.notifier.send(self.menu.text(key, **fmt), icon=icon)

    # -- SELECT_ADAPTER ------------------------------------------------------

    def _select_adapter(self) -> None:
        self._sync()
        adapters = self.catalog.adapters()
        if not adapters:
            log.error('No wireless adapter found')
            self._notify('no_adapter', icon='error')
            self._enter(SessionState.EXIT)
            return
        if len(adapters) == 1:
            self.adapter_path = adapters[0].path
            self._enter(SessionState.SELECT_NETWORK)
            return
        kind, action = self._show(self.menu.adapters_page(adapters))
        if kind == DISMISSED:
            self._enter(SessionState.EXIT)
        elif kind == SELECTED and action.kind == ADAPTER:
            self.adapter_path = action.value
            self._enter(SessionState.SELECT_NETWORK)

    # -- SELECT_NETWORK ------------------------------------------------------

    def _select_network(self) -> None:
        self._sync()
        adapter = self.adapter
        if adapter is None:
            log.warning('Adapter %s disappeared', self.adapter_path)
            self._enter(SessionState.SELECT_ADAPTER)
            return
        if self.agent.pending is not None and self._attempt is None:
            log.warning('Refusing unsolicited request %s', self.agent.pending)
            self._cancel_request()
        if not adapter.powered:
            self._power_page(adapter)
            return
        if adapter.mode == 'ap':
            self._ap_page(adapter)
            return
        if not self.catalog.has_station(adapter):
            # Powered but the station interface has not appeared yet
            self._wait(until=lambda: self.catalog.has_station(adapter) or None,
                       timeout=self.agent_wait)
            if not self.catalog.has_station(adapter):
                log.error('%s has no station interface', adapter.name)
                self._enter(SessionState.EXIT)
            return

        scanning = self.catalog.scan_state(adapter) == ScanState.SCANNING
        if scanning:
            self._scan_seen = True
        elif self._scan_seen:
            # Scanning went true then false: the scan really ended
            self._scan_seen = False
            self.catalog.refresh()
            if self._scan_pending:
                self._scan_pending = False
                self._notify('scan_finished')
        # The Scan reply arrives before iwd raises Scanning
        busy = scanning or self._scan_pending

        def until():
            if self.agent.pending is not None and self._attempt is None:
                return True
            if self._scan_seen and \
                    self.catalog.scan_state(adapter) == ScanState.IDLE:
                return True
            return None

        networks = self.catalog.networks(adapter)
        page = self.menu.main_page(networks, busy)
        kind, action = self._show(page, until)
        if kind == DISMISSED:
            log.info('Menu dismissed')
            self._enter(SessionState.EXIT)
            return
        if kind != SELECTED:
            return

        if action.kind == SCAN:
            self._start_scan(adapter)
        elif action.kind == KNOWN_NETWORKS:
            self._known_networks_page(adapter)
        elif action.kind == SETTINGS:
            self._settings_page(adapter)
        elif action.kind == HIDDEN_NETWORK:
            ssid = self._ask('hidden_ssid_prompt')
            if ssid:
                self._connect_hidden(adapter, ssid)
        elif action.kind == NETWORK:
            try:
                network = self._resolve(action.key,
                                        shown={n.key: n for n in networks})
            except StaleSelectionError as e:
                log.info('%s', e)
                return
            if network.connected:
                self._disconnect(adapter, network)
            else:
                self._connect(adapter, network)

    def _resolve(self, key: NetworkKey, visible: bool = True,
                 shown: Optional[Dict[NetworkKey, Network]] = None) -> Network:
        """Look *key* up in the current catalog.

        With *shown* (the networks as rendered), a network whose connection
        flipped while the menu was open is also stale: the line the user
        picked no longer means connect or disconnect.
        """
        network = self.catalog.network(key)
        if network is None or (visible and not network.visible):
            raise StaleSelectionError(f'{key.ssid} is no longer available')
        if shown is not None and self.catalog.generation != self._shown_generation:
            before = shown.get(key)
            if before is not None and before.connected != network.connected:
                raise StaleSelectionError(
                    f'{key.ssid} changed while the menu was open')
        return network

    def _start_scan(self, adapter: Adapter) -> None:
        try:
            self.catalog.start_scan(adapter)
        except CallError as e:
            log.warning('Scan failed: %s', e.reason)
            self._notify('operation_failed', icon='error', reason=e.reason)
            return
        self._scan_pending = True
        self._notify('scan_started', icon='scan')

    def _disconnect(self, adapter: Adapter, network: Network) -> None:
        try:
            self.catalog.disconnect(adapter)
        except CallError as e:
            self._notify('operation_failed', icon='error', reason=e.reason)
            return
        self._notify('disconnected', icon='disconnect', ssid=network.ssid)

    # -- Connect attempt -----------------------------------------------------

    def _connect(self, adapter: Adapter, network: Network) -> None:
        log.info('Connecting to %s', network.ssid)
        try:
            path = self.catalog.connect(adapter, network)
        except StaleSelectionError as e:
            log.info('%s', e)
            return
        except CallError as e:
            self._finish(Outcome(False, network.ssid, e.reason))
            return
        self._attempt = ConnectAttempt(network.ssid, network.key, path, path,
                                       'Connect', time.monotonic())
        if network.security.needs_secret and not network.known:
            self._enter(SessionState.ENTER_SECRET)
        else:
            self._enter(SessionState.CONNECTING)

    def _connect_hidden(self, adapter: Adapter, ssid: str) -> None:
        log.info('Connecting to hidden network %s', ssid)
        try:
            path = self.catalog.connect_hidden(adapter, ssid)
        except CallError as e:
            self._finish(Outcome(False, ssid, e.reason))
            return
        self._attempt = ConnectAttempt(ssid, None, None, path,
                                       'ConnectHiddenNetwork', time.monotonic())
        self._enter(SessionState.ENTER_SECRET)

    def _attempt_outcome(self, attempt: ConnectAttempt) -> Optional[Outcome]:
        if attempt.finished is not None and not attempt.finished.ok:
            reason = failure_reason(attempt.finished.error_name,
                                    attempt.finished.error_message)
            return Outcome(False, attempt.ssid, reason)
        state = self.catalog.connection_state(self.adapter_path)
        if state.kind == ConnectionKind.CONNECTED and state.network is not None:
            if state.network == attempt.key or (
                    attempt.key is None and state.network.ssid == attempt.ssid):
                return Outcome(True, attempt.ssid)
        if attempt.finished is not None:
            return Outcome(True, attempt.ssid)
        return None

    def _attempt_progress(self, attempt: ConnectAttempt):
        request = self.agent.pending
        if request is not None and attempt.matches_request(request):
            return request
        return self._attempt_outcome(attempt)

    def _follow_attempt(self) -> None:
        """ENTER_SECRET / CONNECTING: wait for the agent or an outcome."""
        attempt = self._attempt
        deadline = attempt.started + self.connect_timeout
        agent_deadline = time.monotonic() + self.agent_wait
        while True:
            progress = self._attempt_progress(attempt)
            if isinstance(progress, Outcome):
                self._finish(progress)
                return
            if isinstance(progress, AuthRequest):
                if self.state != SessionState.ENTER_SECRET:
                    self._enter(SessionState.ENTER_SECRET)
                if not self._answer(progress, attempt):
                    return
                deadline = time.monotonic() + self.connect_timeout
                self._enter(SessionState.CONNECTING)
                continue
            now = time.monotonic()
            if self.state == SessionState.ENTER_SECRET and now >= agent_deadline:
                # The daemon may have a stored secret after all
                self._enter(SessionState.CONNECTING)
            if now >= deadline:
                self._timeout(attempt)
                return
            limit = deadline - now
            if self.state == SessionState.ENTER_SECRET:
                limit = min(limit, max(agent_deadline - now, 0))
            self._wait(until=lambda: self._attempt_progress(attempt),
                       timeout=limit)

    def _answer(self, request: AuthRequest, attempt: ConnectAttempt) -> bool:
        """Prompt for the secret; False if the user dismissed the prompt."""
        def cancelled():
            return True if request.status != AuthStatus.PENDING else None

        user = None
        if request.needs_username:
            user = self._ask('username_prompt', until=cancelled, ssid=attempt.ssid)
        if not request.needs_username or user is not None:
            prompt = 'password_prompt' if request.user or user else 'passphrase_prompt'
            secret = self._ask(prompt, password=True, until=cancelled,
                               ssid=attempt.ssid)
        else:
            secret = None

        if request.status != AuthStatus.PENDING:
            # The daemon withdrew the request; its Connect reply follows
            log.info('Request for %s withdrawn by the daemon', attempt.ssid)
            return True
        if secret is None:
            log.info('Secret entry for %s dismissed', attempt.ssid)
            self._cancel_request()
            self._abandon(attempt)
            self._enter(SessionState.SELECT_NETWORK)
            return False
        try:
            self.agent.answer(secret, user)
        except ProtocolViolation as e:
            log.warning('%s', e)
        return True

    def _cancel_request(self) -> None:
        try:
            self.agent.cancel()
        except ProtocolViolation as e:
            log.debug('%s', e)

    def _abandon(self, attempt: ConnectAttempt) -> None:
        """Leave the daemon idle after an abandoned connect."""
        self._attempt = None
        try:
            self.catalog.disconnect(self.adapter_path)
        except CallError as e:
            log.debug('Disconnect after %s: %s', attempt.ssid, e)

    def _timeout(self, attempt: ConnectAttempt) -> None:
        log.warning('Connecting to %s timed out', attempt.ssid)
        if self.agent.pending is not None:
            self._cancel_request()
        self._abandon(attempt)
        self._finish(Outcome(False, attempt.ssid, self.menu.text('timed_out')))

    def _finish(self, outcome: Outcome) -> None:
        self._attempt = None
        self.outcomes.append(outcome)
        self._enter(SessionState.RESULT)

    # -- RESULT --------------------------------------------------------------

    def _result(self) -> None:
        outcome = self.outcomes[-1]
        if outcome.success:
            log.info('Connected to %s', outcome.ssid)
            self._notify('connected', icon='connected', ssid=outcome.ssid)
        else:
            log.warning('Connection to %s failed: %s', outcome.ssid, outcome.reason)
            self._notify('connect_failed', icon='error', ssid=outcome.ssid,
                         reason=outcome.reason)
        if self.result_pause:
            time.sleep(self.result_pause)
        self._enter(SessionState.SELECT_NETWORK)

    # -- Known networks ------------------------------------------------------

    def _known_networks_page(self, adapter: Adapter) -> None:
        kind, action = self._show(
            self.menu.known_networks_page(self.catalog.known_networks(adapter)))
        if kind != SELECTED or action.kind != KNOWN_NETWORK:
            return
        try:
            network = self._resolve(action.key, visible=False)
        except StaleSelectionError as e:
            log.info('%s', e)
            return
        kind, option = self._show(self.menu.known_options_page(network))
        if kind != SELECTED:
            return
        try:
            network = self._resolve(option.key, visible=False)
            if option.kind == FORGET_NETWORK:
                self.catalog.forget(network)
                self._notify('forgot', icon='forget_network', ssid=network.ssid)
            elif option.kind in (ENABLE_AUTOCONNECT, DISABLE_AUTOCONNECT):
                enable = option.kind == ENABLE_AUTOCONNECT
                self.catalog.set_autoconnect(network, enable)
                self._notify('autoconnect_enabled' if enable else 'autoconnect_disabled',
                             icon=option.kind, ssid=network.ssid)
        except StaleSelectionError as e:
            log.info('%s', e)
            return
        except CallError as e:
            self._notify('operation_failed', icon='error', reason=e.reason)
            return
        self.catalog.refresh()

    # -- Settings, power, access point ---------------------------------------

    def _settings_page(self, adapter: Adapter) -> None:
        kind, action = self._show(self.menu.settings_page(adapter))
        if kind != SELECTED:
            return
        try:
            if action.kind == DISABLE_ADAPTER:
                self.catalog.set_powered(adapter, False)
                self._notify('adapter_disabled', icon='disable_adapter')
            elif action.kind == SWITCH_MODE:
                self.catalog.set_mode(adapter, action.value)
                self._notify('mode_switched', icon='switch_mode', mode=action.value)
        except CallError as e:
            self._notify('operation_failed', icon='error', reason=e.reason)
            return
        self.catalog.refresh()

    def _power_page(self, adapter: Adapter) -> None:
        kind, action = self._show(self.menu.power_page())
        if kind == DISMISSED:
            self._notify('adapter_remains_disabled')
            self._enter(SessionState.EXIT)
            return
        if kind != SELECTED or action.kind != POWER_ON_DEVICE:
            return
        try:
            self.catalog.set_powered(adapter, True)
        except CallError as e:
            self._notify('operation_failed', icon='error', reason=e.reason)
            return
        self._notify('adapter_enabled', icon='power_on_device')
        self.catalog.refresh()
        if adapter.mode != 'station':
            return
        if not self.catalog.has_station(adapter):
            self._wait(until=lambda: self.catalog.has_station(adapter) or None,
                       timeout=self.agent_wait)
        if self.catalog.has_station(adapter):
            self._start_scan(adapter)

    def _ap_page(self, adapter: Adapter) -> None:
        kind, action = self._show(self.menu.ap_page(self.catalog.access_point(adapter)))
        if kind == DISMISSED:
            self._enter(SessionState.EXIT)
            return
        if kind != SELECTED:
            return
        if action.kind == SET_SSID:
            self._ap_ssid = self._ask('ssid_prompt') or self._ap_ssid
        elif action.kind == SET_PASSWORD:
            self._ap_psk = self._ask('ap_password_prompt', password=True) or self._ap_psk
        elif action.kind == SETTINGS:
            self._settings_page(adapter)
        elif action.kind == START_AP:
            self._start_ap(adapter)
        elif action.kind == STOP_AP:
            try:
                self.catalog.stop_access_point(adapter)
            except CallError as e:
                self._notify('operation_failed', icon='error', reason=e.reason)
                return
            self._notify('ap_stopped', icon='stop_ap')

    def _start_ap(self, adapter: Adapter) -> None:
        ssid = self._ap_ssid or self._ask('ssid_prompt')
        if not ssid:
            return
        psk = self._ap_psk or self._ask('ap_password_prompt', password=True)
        if not psk:
            return
        self._ap_ssid, self._ap_psk = ssid, psk
        try:
            self.catalog.start_access_point(adapter, ssid, psk)
        except CallError as e:
            self._notify('ap_failed', icon='error', reason=e.reason)
            return
        self._notify('ap_started', icon='start_ap', ssid=ssid)
