#!/usr/bin/env python3
"""
Tests for the iwmenu authentication agent.

The daemon side is simulated by calling the exported handler directly,
the way GioBus does from its loop thread.
"""

import unittest

from test_helpers import REPO_DIR  # noqa: F401

from iwmenu.agent import AgentState, AuthAgent, AuthStatus, SecretKind
from iwmenu.config import (
    AGENT_CANCELED_ERROR,
    AGENT_MANAGER_IFACE,
    AGENT_PATH,
    IWD_AGENT_MANAGER_PATH,
)
from iwmenu.errors import CallError, ProtocolViolation
from iwmenu.interfaces import MethodReply
from iwmenu.mock_backend import MockIwdBus
from iwmenu.models import AgentCancelled, AgentReleased, AgentRequested

NETWORK = "/net/connman/iwd/0/4/486f6d65_psk"
OTHER = "/net/connman/iwd/0/4/4f74686572_psk"


class RecordingReply(MethodReply):
    """Captures how the agent completed a daemon call."""

    def __init__(self):
        self.values = None
        self.error = None

    def return_value(self, signature, values):
        self.values = (signature, tuple(values))

    def return_error(self, name, message):
        self.error = (name, message)


class AgentTestCase(unittest.TestCase):

    timeout = 0

    def setUp(self):
        self.bus = MockIwdBus()
        self.bus.connect()
        self.agent = AuthAgent(self.bus, timeout=self.timeout)
        self.agent.register()

    def tearDown(self):
        self.agent.unregister()

    def request(self, method="RequestPassphrase", params=(NETWORK,)):
        reply = RecordingReply()
        self.bus.agent_handler(method, params, reply)
        return reply

    def events(self):
        return self.bus.subscribe().drain()


class TestRegistration(AgentTestCase):
    """Tests for register/unregister."""

    def test_registered_with_daemon(self):
        self.assertEqual(self.bus.agent_path, AGENT_PATH)
        self.assertEqual(self.agent.state, AgentState.REGISTERED)
        self.assertIsNotNone(self.bus.agent_handler)

    def test_unregister(self):
        self.agent.unregister()
        self.assertIsNone(self.bus.agent_path)
        self.assertIsNone(self.bus.agent_handler)
        self.assertEqual(self.agent.state, AgentState.UNREGISTERED)

    def test_register_refused_unexports(self):
        second = AuthAgent(self.bus, path="/org/iwmenu/Other")
        with self.assertRaises(CallError):
            second.register()
        self.assertIsNone(self.bus.agent_handler)
        self.assertEqual(second.state, AgentState.UNREGISTERED)

    def test_unregister_cancels_pending(self):
        reply = self.request()
        self.agent.unregister()
        self.assertEqual(reply.error[0], AGENT_CANCELED_ERROR)
        self.assertIn((IWD_AGENT_MANAGER_PATH, AGENT_MANAGER_IFACE,
                       "UnregisterAgent", (AGENT_PATH,)), self.bus.calls)


class TestRequests(AgentTestCase):
    """Tests for the single pending-request slot."""

    def test_passphrase_request(self):
        reply = self.request()
        request = self.agent.pending
        self.assertEqual(request.network_path, NETWORK)
        self.assertEqual(request.kind, SecretKind.PASSPHRASE)
        self.assertEqual(self.agent.state, AgentState.AWAITING_ANSWER)
        self.assertEqual(self.events(), [AgentRequested(request)])

        self.agent.answer("hunter22")
        self.assertEqual(reply.values, ("(s)", ("hunter22",)))
        self.assertEqual(request.status, AuthStatus.ANSWERED)
        self.assertIsNone(self.agent.pending)
        self.assertEqual(self.agent.state, AgentState.REGISTERED)

    def test_username_and_password(self):
        reply = self.request("RequestUserNameAndPassword")
        self.assertTrue(self.agent.pending.needs_username)
        self.agent.answer("secret", user="alice")
        self.assertEqual(reply.values, ("(ss)", ("alice", "secret")))

    def test_user_password_carries_user(self):
        self.request("RequestUserPassword", (NETWORK, "bob"))
        request = self.agent.pending
        self.assertEqual(request.kind, SecretKind.PASSWORD)
        self.assertEqual(request.user, "bob")
        self.assertFalse(request.needs_username)

    def test_private_key_passphrase(self):
        self.request("RequestPrivateKeyPassphrase")
        self.assertEqual(self.agent.pending.kind, SecretKind.PRIVATE_KEY)

    def test_second_request_rejected(self):
        first = self.request()
        with self.assertLogs("iwmenu.agent", level="WARNING"):
            second = self.request(params=(OTHER,))
        self.assertEqual(second.error[0], AGENT_CANCELED_ERROR)
        self.assertIsNone(first.values)
        self.assertEqual(self.agent.pending.network_path, NETWORK)

    def test_user_cancel(self):
        reply = self.request()
        request = self.agent.pending
        self.agent.cancel()
        self.assertEqual(reply.error[0], AGENT_CANCELED_ERROR)
        self.assertEqual(request.status, AuthStatus.CANCELLED)
        self.assertIsNone(self.agent.pending)

    def test_answer_without_request(self):
        with self.assertRaises(ProtocolViolation):
            self.agent.answer("x")
        with self.assertRaises(ProtocolViolation):
            self.agent.cancel()

    def test_answer_only_once(self):
        reply = self.request()
        self.agent.answer("one")
        with self.assertRaises(ProtocolViolation):
            self.agent.answer("two")
        self.assertEqual(reply.values, ("(s)", ("one",)))

    def test_unknown_method(self):
        reply = self.request("RequestSomething")
        self.assertEqual(reply.error[0], "org.freedesktop.DBus.Error.UnknownMethod")
        self.assertIsNone(self.agent.pending)


class TestDaemonSide(AgentTestCase):
    """Tests for Cancel and Release sent by the daemon."""

    def test_daemon_cancel(self):
        reply = self.request()
        request = self.agent.pending
        self.events()
        ack = self.request("Cancel", ("user-canceled",))
        self.assertEqual(ack.values, ("", ()))
        self.assertEqual(request.status, AuthStatus.CANCELLED)
        self.assertIsNone(self.agent.pending)
        self.assertEqual(self.events(), [AgentCancelled(request, "user-canceled")])
        # The daemon's own request is never answered after its Cancel
        self.assertIsNone(reply.values)
        self.assertIsNone(reply.error)
        with self.assertRaises(ProtocolViolation):
            self.agent.answer("late")

    def test_cancel_without_request(self):
        ack = self.request("Cancel", ("timeout",))
        self.assertEqual(ack.values, ("", ()))
        self.assertEqual(self.events(), [])

    def test_release(self):
        self.request()
        request = self.agent.pending
        self.events()
        self.request("Release", ())
        self.assertEqual(self.agent.state, AgentState.UNREGISTERED)
        self.assertEqual(self.events(),
                         [AgentCancelled(request, "released"), AgentReleased()])


class TestTimeout(AgentTestCase):
    """An unanswered request is cancelled after the timeout."""

    timeout = 0.05

    def test_request_expires(self):
        reply = self.request()
        request = self.agent.pending
        stream = self.bus.subscribe()
        self.assertIsInstance(stream.get(timeout=1), AgentRequested)
        event = stream.get(timeout=2)
        self.assertEqual(event, AgentCancelled(request, "timeout"))
        self.assertEqual(reply.error[0], AGENT_CANCELED_ERROR)
        self.assertEqual(request.status, AuthStatus.CANCELLED)
        self.assertIsNone(self.agent.pending)

    def test_answered_request_does_not_expire(self):
        reply = self.request()
        self.agent.answer("fast")
        stream = self.bus.subscribe()
        stream.get(timeout=1)
        self.assertIsNone(stream.get(timeout=0.2))
        self.assertIsNone(reply.error)


if __name__ == "__main__":
    unittest.main()
