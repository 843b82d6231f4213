"""iwmenu - IPC client for iwd using Gio's D-Bus bindings.

All daemon traffic goes through one Gio.DBusConnection. A GLib main loop
runs on a background thread and receives signals, asynchronous replies
and agent method calls; everything it receives is turned into plain
events and queued for the controller thread. Replies to daemon-initiated
calls are marshalled back onto the loop via GLib.idle_add.
"""

import logging
import threading
from typing import Any, Dict, Optional, Sequence

from gi.repository import Gio, GLib

from .config import (
    IWD_SERVICE,
    OBJECT_MANAGER_IFACE,
    PROPERTIES_IFACE,
    CALL_TIMEOUT_MS,
)
from .errors import (
    CallError,
    TransportError,
    classify_error_name,
    is_transport_error,
)
from .interfaces import BusInterface, EventStream, MethodReply, MethodHandler
from .models import (
    CallFinished,
    ObjectAdded,
    ObjectRemoved,
    PropertiesChanged,
    ServiceLost,
)

log = logging.getLogger(__name__)

DBUS_SERVICE = 'org.freedesktop.DBus'
DBUS_PATH = '/org/freedesktop/DBus'
DBUS_IFACE = 'org.freedesktop.DBus'


def _split_gerror(error: GLib.Error):
    """Return (dbus_error_name, message) for a GLib.Error from GDBus."""
    name = Gio.DBusError.get_remote_error(error) or ''
    message = error.message or ''
    if message.startswith('GDBus.Error:'):
        # "GDBus.Error:net.connman.iwd.Failed: Operation failed"
        remainder = message[len('GDBus.Error:'):]
        head, sep, tail = remainder.partition(': ')
        if not name:
            name = head
        message = tail if sep else ''
    return name, message.strip()


def _to_call_error(error: GLib.Error, method: str) -> Exception:
    """Translate a GLib.Error into TransportError or a classified CallError."""
    name, message = _split_gerror(error)
    if is_transport_error(name) or error.matches(Gio.io_error_quark(),
                                                 Gio.IOErrorEnum.CLOSED):
        return TransportError(message or f'{method}: daemon unreachable')
    return CallError(message or name or f'{method} failed', name=name,
                     kind=classify_error_name(name))


class _InvocationReply(MethodReply):
    """Completes a Gio.DBusMethodInvocation from any thread."""

    def __init__(self, invocation):
        self._invocation = invocation

    def return_value(self, signature: str, values: Sequence[Any]) -> None:
        variant = GLib.Variant(signature, tuple(values)) if signature else None
        GLib.idle_add(self._complete, self._invocation.return_value, variant)

    def return_error(self, name: str, message: str) -> None:
        GLib.idle_add(self._complete, self._invocation.return_dbus_error,
                      name, message)

    @staticmethod
    def _complete(func, *args):
        func(*args)
        return False


class GioBus(BusInterface):
    """BusInterface over the system bus using Gio.DBusConnection."""

    def __init__(self, bus_type=None, service: str = IWD_SERVICE):
        self._bus_type = bus_type if bus_type is not None else Gio.BusType.SYSTEM
        self._service = service
        self._conn = None
        self._loop = None
        self._thread = None
        self._stream = EventStream()
        self._subscriptions = []
        self._registrations: Dict[str, int] = {}

    # -- Session lifecycle -------------------------------------------------

    def connect(self) -> None:
        """Open the bus, verify iwd is present and start the signal loop."""
        try:
            self._conn = Gio.bus_get_sync(self._bus_type, None)
        except GLib.Error as e:
            raise TransportError(f'Cannot connect to D-Bus: {e.message}') from e

        try:
            (has_owner,) = self._conn.call_sync(
                DBUS_SERVICE, DBUS_PATH, DBUS_IFACE, 'NameHasOwner',
                GLib.Variant('(s)', (self._service,)), None,
                Gio.DBusCallFlags.NONE, CALL_TIMEOUT_MS, None,
            ).unpack()
        except GLib.Error as e:
            raise TransportError(f'D-Bus query failed: {e.message}') from e
        if not has_owner:
            raise TransportError(f'{self._service} is not running')

        self._stream = EventStream()
        self._subscribe_signals()

        self._loop = GLib.MainLoop()
        self._thread = threading.Thread(target=self._loop.run,
                                        name='iwmenu-bus', daemon=True)
        self._thread.start()
        log.info('Connected to %s', self._service)

    def _subscribe_signals(self) -> None:
        sub = self._conn.signal_subscribe
        flags = Gio.DBusSignalFlags.NONE
        self._subscriptions = [
            sub(self._service, OBJECT_MANAGER_IFACE, 'InterfacesAdded',
                None, None, flags, self._on_interfaces_added, None),
            sub(self._service, OBJECT_MANAGER_IFACE, 'InterfacesRemoved',
                None, None, flags, self._on_interfaces_removed, None),
            sub(self._service, PROPERTIES_IFACE, 'PropertiesChanged',
                None, None, flags, self._on_properties_changed, None),
            sub(DBUS_SERVICE, DBUS_IFACE, 'NameOwnerChanged', DBUS_PATH,
                self._service, flags, self._on_name_owner_changed, None),
        ]

    def close(self) -> None:
        """Stop the loop and release every subscription and export."""
        if self._conn is not None:
            for sub_id in self._subscriptions:
                self._conn.signal_unsubscribe(sub_id)
            for path in list(self._registrations):
                self.unexport_object(path)
        self._subscriptions = []
        self._stream.close()
        if self._loop is not None:
            self._loop.quit()
        if self._thread is not None:
            self._thread.join(timeout=2)
        self._loop = None
        self._thread = None

    # -- Calls ---------------------------------------------------------------

    def _pack(self, signature: Optional[str], args: Sequence[Any]):
        if not signature:
            return None
        return GLib.Variant(signature, tuple(args))

    def wrap_variant(self, signature: str, value: Any) -> Any:
        return GLib.Variant(signature, value)

    def call(self, path, interface, method, signature=None, args=(),
             timeout_ms=None) -> tuple:
        if self._conn is None:
            raise TransportError('Not connected')
        try:
            reply = self._conn.call_sync(
                self._service, path, interface, method,
                self._pack(signature, args), None, Gio.DBusCallFlags.NONE,
                timeout_ms or CALL_TIMEOUT_MS, None,
            )
        except GLib.Error as e:
            raise _to_call_error(e, method) from e
        return reply.unpack() if reply is not None else ()

    def call_async(self, path, interface, method, signature=None, args=(),
                   timeout_ms=None) -> None:
        if self._conn is None:
            raise TransportError('Not connected')

        def _on_reply(conn, result, _data):
            try:
                conn.call_finish(result)
                event = CallFinished(path, interface, method)
            except GLib.Error as e:
                name, message = _split_gerror(e)
                event = CallFinished(path, interface, method,
                                     error_name=name or 'org.freedesktop.DBus.Error.Failed',
                                     error_message=message)
            self._stream.put(event)

        self._conn.call(
            self._service, path, interface, method,
            self._pack(signature, args), None, Gio.DBusCallFlags.NONE,
            timeout_ms or CALL_TIMEOUT_MS, None, _on_reply, None,
        )

    # -- Events --------------------------------------------------------------

    def subscribe(self) -> EventStream:
        return self._stream

    def post(self, event) -> None:
        self._stream.put(event)

    def _on_interfaces_added(self, _conn, _sender, _path, _iface, _signal,
                             params, _data):
        obj_path, interfaces = params.unpack()
        self._stream.put(ObjectAdded(obj_path, interfaces))

    def _on_interfaces_removed(self, _conn, _sender, _path, _iface, _signal,
                               params, _data):
        obj_path, interfaces = params.unpack()
        self._stream.put(ObjectRemoved(obj_path, tuple(interfaces)))

    def _on_properties_changed(self, _conn, _sender, path, _iface, _signal,
                               params, _data):
        interface, changed, invalidated = params.unpack()
        self._stream.put(PropertiesChanged(path, interface, changed,
                                           tuple(invalidated)))

    def _on_name_owner_changed(self, _conn, _sender, _path, _iface, _signal,
                               params, _data):
        _name, _old, new_owner = params.unpack()
        if not new_owner:
            log.error('%s left the bus', self._service)
            self._stream.put(ServiceLost(self._service))

    # -- Exported objects ----------------------------------------------------

    def export_object(self, path: str, introspection_xml: str,
                      handler: MethodHandler) -> None:
        node = Gio.DBusNodeInfo.new_for_xml(introspection_xml)

        def _on_method_call(_conn, _sender, _path, _iface, method, params,
                            invocation):
            handler(method, params.unpack(), _InvocationReply(invocation))

        try:
            reg_id = self._conn.register_object(path, node.interfaces[0],
                                                _on_method_call, None, None)
        except GLib.Error as e:
            raise CallError(f'Cannot export {path}: {e.message}') from e
        self._registrations[path] = reg_id

    def unexport_object(self, path: str) -> None:
        reg_id = self._registrations.pop(path, None)
        if reg_id is not None and self._conn is not None:
            self._conn.unregister_object(reg_id)
