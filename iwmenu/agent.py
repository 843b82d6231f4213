"""iwmenu - Authentication agent.

Answers iwd's secret requests on behalf of the session controller. The
daemon calls the agent on the bus thread; each request is parked in a
single slot and announced to the controller as an AgentRequested event.
The daemon's reply stays open until the controller answers or cancels,
the daemon cancels, or AUTH_TIMEOUT_SECONDS elapse.
"""

import logging
import threading
from enum import Enum
from typing import Optional

from .config import (
    AGENT_CANCELED_ERROR,
    AGENT_MANAGER_IFACE,
    AGENT_PATH,
    AUTH_TIMEOUT_SECONDS,
    IWD_AGENT_MANAGER_PATH,
)
from .errors import CallError, ProtocolViolation, TransportError
from .interfaces import BusInterface, MethodReply
from .models import AgentCancelled, AgentReleased, AgentRequested

log = logging.getLogger(__name__)

AGENT_INTROSPECTION_XML = """
<node>
  <interface name="net.connman.iwd.Agent">
    <method name="Release"/>
    <method name="RequestPassphrase">
      <arg name="network" type="o" direction="in"/>
      <arg name="passphrase" type="s" direction="out"/>
    </method>
    <method name="RequestPrivateKeyPassphrase">
      <arg name="network" type="o" direction="in"/>
      <arg name="passphrase" type="s" direction="out"/>
    </method>
    <method name="RequestUserNameAndPassword">
      <arg name="network" type="o" direction="in"/>
      <arg name="user" type="s" direction="out"/>
      <arg name="password" type="s" direction="out"/>
    </method>
    <method name="RequestUserPassword">
      <arg name="network" type="o" direction="in"/>
      <arg name="user" type="s" direction="in"/>
      <arg name="password" type="s" direction="out"/>
    </method>
    <method name="Cancel">
      <arg name="reason" type="s" direction="in"/>
    </method>
  </interface>
</node>
"""


class SecretKind(Enum):
    PASSPHRASE = 'passphrase'
    PRIVATE_KEY = 'private-key'
    USERNAME_PASSWORD = 'username-password'
    PASSWORD = 'password'


class AuthStatus(Enum):
    PENDING = 'pending'
    ANSWERED = 'answered'
    CANCELLED = 'cancelled'


class AgentState(Enum):
    UNREGISTERED = 'unregistered'
    REGISTERED = 'registered'
    AWAITING_ANSWER = 'awaiting-answer'


_REQUEST_METHODS = {
    'RequestPassphrase': SecretKind.PASSPHRASE,
    'RequestPrivateKeyPassphrase': SecretKind.PRIVATE_KEY,
    'RequestUserNameAndPassword': SecretKind.USERNAME_PASSWORD,
    'RequestUserPassword': SecretKind.PASSWORD,
}


class AuthRequest:
    """One outstanding secret request from the daemon.

    The completion slot is single-use: once the status leaves PENDING the
    daemon-facing reply has been sent and cannot be sent again.
    """

    def __init__(self, network_path: str, kind: SecretKind,
                 reply: MethodReply, user: Optional[str] = None):
        self.network_path = network_path
        self.kind = kind
        self.user = user
        self.status = AuthStatus.PENDING
        self._reply = reply
        self._timer: Optional[threading.Timer] = None

    @property
    def needs_username(self) -> bool:
        return self.kind == SecretKind.USERNAME_PASSWORD

    def __repr__(self):
        return (f'AuthRequest({self.network_path!r}, {self.kind.value}, '
                f'{self.status.value})')


class AuthAgent:
    """iwd agent endpoint with a single pending-request slot."""

    def __init__(self, bus: BusInterface, path: str = AGENT_PATH,
                 timeout: float = AUTH_TIMEOUT_SECONDS):
        self._bus = bus
        self.path = path
        self.timeout = timeout
        self.state = AgentState.UNREGISTERED
        self._pending: Optional[AuthRequest] = None
        self._lock = threading.Lock()
        self._requested = threading.Event()

    # -- Registration --------------------------------------------------------

    def register(self) -> None:
        """Publish the agent and register it with the daemon.

        Raises:
            CallError: If the daemon refuses the registration.
        """
        self._bus.export_object(self.path, AGENT_INTROSPECTION_XML, self._handle)
        try:
            self._bus.call(IWD_AGENT_MANAGER_PATH, AGENT_MANAGER_IFACE,
                           'RegisterAgent', '(o)', (self.path,))
        except CallError:
            self._bus.unexport_object(self.path)
            raise
        with self._lock:
            self.state = AgentState.REGISTERED
        log.info('Agent registered at %s', self.path)

    def unregister(self) -> None:
        """Cancel any pending request and withdraw the agent."""
        if self.pending is not None:
            try:
                self.cancel()
            except ProtocolViolation:
                pass
        with self._lock:
            registered = self.state != AgentState.UNREGISTERED
            self.state = AgentState.UNREGISTERED
        if registered:
            try:
                self._bus.call(IWD_AGENT_MANAGER_PATH, AGENT_MANAGER_IFACE,
                               'UnregisterAgent', '(o)', (self.path,))
            except (CallError, TransportError) as e:
                log.warning('UnregisterAgent failed: %s', e)
        self._bus.unexport_object(self.path)

    # -- Controller side -----------------------------------------------------

    @property
    def pending(self) -> Optional[AuthRequest]:
        with self._lock:
            return self._pending

    def wait_for_request(self, timeout: Optional[float] = None) -> Optional[AuthRequest]:
        """Block until a request is pending or *timeout* elapses."""
        self._requested.wait(timeout)
        return self.pending

    def _take(self) -> AuthRequest:
        with self._lock:
            request = self._pending
            if request is None:
                raise ProtocolViolation('No authentication request is pending')
            self._clear(request)
            return request

    def _clear(self, request: AuthRequest) -> None:
        # Caller holds the lock
        self._pending = None
        self._requested.clear()
        if self.state == AgentState.AWAITING_ANSWER:
            self.state = AgentState.REGISTERED
        if request._timer is not None:
            request._timer.cancel()

    def answer(self, secret: str, user: Optional[str] = None) -> None:
        """Send *secret* (and *user* for username+password requests).

        Raises:
            ProtocolViolation: If no request is pending.
        """
        request = self._take()
        request.status = AuthStatus.ANSWERED
        if request.kind == SecretKind.USERNAME_PASSWORD:
            request._reply.return_value('(ss)', (user or '', secret))
        else:
            request._reply.return_value('(s)', (secret,))
        log.debug('Answered %s', request)

    def cancel(self) -> None:
        """Refuse the pending request.

        Raises:
            ProtocolViolation: If no request is pending.
        """
        request = self._take()
        request.status = AuthStatus.CANCELLED
        request._reply.return_error(AGENT_CANCELED_ERROR, 'Canceled by user')
        log.info('Authentication for %s canceled', request.network_path)

    # -- Daemon side (bus thread) --------------------------------------------

    def _handle(self, method: str, params: tuple, reply: MethodReply) -> None:
        if method in _REQUEST_METHODS:
            self._on_request(_REQUEST_METHODS[method], params, reply)
        elif method == 'Cancel':
            self._on_cancel(params[0] if params else '')
            reply.return_value('', ())
        elif method == 'Release':
            self._on_release()
            reply.return_value('', ())
        else:
            reply.return_error('org.freedesktop.DBus.Error.UnknownMethod',
                               f'Unknown method {method}')

    def _on_request(self, kind: SecretKind, params: tuple,
                    reply: MethodReply) -> None:
        network_path = params[0]
        user = params[1] if len(params) > 1 else None
        with self._lock:
            if self._pending is not None:
                violation = ProtocolViolation(
                    f'{kind.value} request for {network_path} while '
                    f'{self._pending.network_path} is pending')
                log.warning('%s', violation)
                reply.return_error(AGENT_CANCELED_ERROR, str(violation))
                return
            request = AuthRequest(network_path, kind, reply, user)
            if self.timeout:
                request._timer = threading.Timer(self.timeout, self._expire,
                                                 args=(request,))
                request._timer.daemon = True
                request._timer.start()
            self._pending = request
            self.state = AgentState.AWAITING_ANSWER
            self._requested.set()
        log.info('Daemon requests %s for %s', kind.value, network_path)
        self._bus.post(AgentRequested(request))

    def _on_cancel(self, reason: str) -> None:
        with self._lock:
            request = self._pending
            if request is None:
                return
            self._clear(request)
            request.status = AuthStatus.CANCELLED
        log.info('Daemon canceled request for %s: %s', request.network_path,
                 reason)
        self._bus.post(AgentCancelled(request, reason))

    def _on_release(self) -> None:
        with self._lock:
            request = self._pending
            if request is not None:
                self._clear(request)
                request.status = AuthStatus.CANCELLED
            self.state = AgentState.UNREGISTERED
        log.info('Agent released by the daemon')
        if request is not None:
            self._bus.post(AgentCancelled(request, 'released'))
        self._bus.post(AgentReleased())

    def _expire(self, request: AuthRequest) -> None:
        with self._lock:
            if self._pending is not request:
                return
            self._clear(request)
            request.status = AuthStatus.CANCELLED
        log.warning('Authentication for %s timed out', request.network_path)
        request._reply.return_error(AGENT_CANCELED_ERROR, 'Request timed out')
        self._bus.post(AgentCancelled(request, 'timeout'))
