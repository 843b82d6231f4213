"""iwmenu - Abstract interfaces.

Defines contracts for the daemon session and the selector process so the
catalog, agent and session controller can be exercised without D-Bus or a
real launcher.
"""

import queue
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterator, Optional, Sequence

from .config import PROPERTIES_IFACE, OBJECT_MANAGER_IFACE, IWD_ROOT_PATH


class EventStream:
    """Single-consumer stream of IPC events.

    Producers (bus loop thread, agent) put events; only the controller
    thread takes them, so catalog updates stay in emission order.
    """

    def __init__(self):
        self._queue = queue.Queue()
        self.closed = False

    def put(self, event) -> None:
        if not self.closed:
            self._queue.put(event)

    def get(self, timeout: Optional[float] = None):
        """Return the next event, or None if *timeout* elapses first."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def get_nowait(self):
        return self.get(timeout=0) if not self._queue.empty() else None

    def drain(self) -> list:
        """Return every queued event without blocking."""
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def close(self) -> None:
        self.closed = True

    def __iter__(self) -> Iterator:
        while not self.closed:
            event = self.get(timeout=0.5)
            if event is not None:
                yield event


class MethodReply(ABC):
    """Completion handle for a daemon-initiated method call."""

    @abstractmethod
    def return_value(self, signature: str, values: Sequence[Any]) -> None:
        """Complete the call successfully."""

    @abstractmethod
    def return_error(self, name: str, message: str) -> None:
        """Complete the call with a D-Bus error."""


# handler(method_name, parameters, reply)
MethodHandler = Callable[[str, tuple, MethodReply], None]


class BusInterface(ABC):
    """Contract of the IPC client towards the wireless daemon."""

    @abstractmethod
    def connect(self) -> None:
        """Open the session; raise TransportError if unreachable."""

    @abstractmethod
    def close(self) -> None:
        """Tear the session down."""

    @abstractmethod
    def call(self, path: str, interface: str, method: str,
             signature: Optional[str] = None, args: Sequence[Any] = (),
             timeout_ms: Optional[int] = None) -> tuple:
        """Invoke a daemon method and return the unpacked reply tuple."""

    @abstractmethod
    def call_async(self, path: str, interface: str, method: str,
                   signature: Optional[str] = None, args: Sequence[Any] = (),
                   timeout_ms: Optional[int] = None) -> None:
        """Invoke a daemon method; the reply arrives as a CallFinished event."""

    @abstractmethod
    def subscribe(self) -> EventStream:
        """Return the event stream of the current session."""

    @abstractmethod
    def post(self, event) -> None:
        """Queue a locally produced event behind the daemon's events."""

    @abstractmethod
    def export_object(self, path: str, introspection_xml: str,
                      handler: MethodHandler) -> None:
        """Publish an object whose methods the daemon may call."""

    @abstractmethod
    def unexport_object(self, path: str) -> None:
        """Withdraw an object published with export_object."""

    def get_managed_objects(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """Return the daemon's full object table."""
        (objects,) = self.call(IWD_ROOT_PATH, OBJECT_MANAGER_IFACE,
                               'GetManagedObjects')
        return objects

    def get_property(self, path: str, interface: str, name: str) -> Any:
        (value,) = self.call(path, PROPERTIES_IFACE, 'Get', '(ss)',
                             (interface, name))
        return value

    def set_property(self, path: str, interface: str, name: str,
                     signature: str, value: Any) -> None:
        """Set a daemon property; *signature* is the value's D-Bus type."""
        self.call(path, PROPERTIES_IFACE, 'Set', '(ssv)',
                  (interface, name, self.wrap_variant(signature, value)))

    def wrap_variant(self, signature: str, value: Any) -> Any:
        """Box *value* for a 'v' argument slot."""
        return value


class SelectorHandle(ABC):
    """One running selector invocation."""

    @abstractmethod
    def poll(self) -> bool:
        """Return True once the selector has finished."""

    @abstractmethod
    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until finished or *timeout*; return poll()."""

    @abstractmethod
    def output(self) -> Optional[str]:
        """Return the selected line, or None on dismissal."""

    @abstractmethod
    def cancel(self) -> None:
        """Terminate the selector; its output becomes a dismissal."""


class SelectorInterface(ABC):
    """Renders a MenuPage and returns the chosen line or a dismissal."""

    @abstractmethod
    def open(self, page) -> SelectorHandle:
        """Start a selector for *page* without blocking."""

    def choose(self, page) -> Optional[str]:
        """Run a selector for *page* to completion."""
        handle = self.open(page)
        handle.wait()
        return handle.output()
