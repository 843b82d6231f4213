#!/usr/bin/env python3
"""
Tests for iwmenu error classification and settings loading.

Validates how daemon error names map onto CallError kinds and user-facing
reasons, and how the JSON config file and environment build Settings.
"""

import json
import os
import tempfile
import unittest

import test_helpers  # noqa: F401  (puts the repo on sys.path)

from iwmenu.config import Settings, load_settings
from iwmenu.errors import (
    MALFORMED,
    REJECTED,
    TRANSIENT,
    CallError,
    IwmenuError,
    SelectorError,
    StaleSelectionError,
    TransportError,
    classify_error_name,
    failure_reason,
    is_transport_error,
)


# ═══════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════
class TestErrorClassification(unittest.TestCase):
    """Tests for classify_error_name and is_transport_error."""

    def test_busy_is_transient(self):
        self.assertEqual(classify_error_name("net.connman.iwd.Busy"), TRANSIENT)

    def test_timeout_is_transient(self):
        self.assertEqual(
            classify_error_name("org.freedesktop.DBus.Error.NoReply"), TRANSIENT)

    def test_invalid_args_is_malformed(self):
        self.assertEqual(
            classify_error_name("org.freedesktop.DBus.Error.InvalidArgs"), MALFORMED)

    def test_daemon_errors_are_rejected(self):
        self.assertEqual(classify_error_name("net.connman.iwd.Failed"), REJECTED)
        self.assertEqual(classify_error_name("net.connman.iwd.NotFound"), REJECTED)

    def test_missing_name_is_rejected(self):
        self.assertEqual(classify_error_name(None), REJECTED)
        self.assertEqual(classify_error_name(""), REJECTED)

    def test_transport_names(self):
        self.assertTrue(is_transport_error("org.freedesktop.DBus.Error.ServiceUnknown"))
        self.assertTrue(is_transport_error("org.freedesktop.DBus.Error.NameHasNoOwner"))
        self.assertFalse(is_transport_error("net.connman.iwd.Failed"))
        self.assertFalse(is_transport_error(None))


class TestFailureReason(unittest.TestCase):
    """Tests for the reason text shown in notifications."""

    def test_friendly_name_wins(self):
        self.assertEqual(
            failure_reason("net.connman.iwd.Aborted", "Operation aborted"),
            "Connection canceled")

    def test_message_used_when_present(self):
        self.assertEqual(
            failure_reason("net.connman.iwd.Failed", "invalid-passphrase"),
            "invalid-passphrase")

    def test_name_suffix_without_message(self):
        self.assertEqual(failure_reason("net.connman.iwd.NoAgent", ""), "NoAgent")

    def test_nothing_known(self):
        self.assertEqual(failure_reason(None, None), "Operation failed")


class TestErrorHierarchy(unittest.TestCase):
    """All iwmenu errors share one base class."""

    def test_subclasses(self):
        for cls in (TransportError, CallError, SelectorError, StaleSelectionError):
            self.assertTrue(issubclass(cls, IwmenuError))

    def test_call_error_attributes(self):
        err = CallError("Operation already in progress",
                        name="net.connman.iwd.Busy", kind=TRANSIENT)
        self.assertTrue(err.transient)
        self.assertEqual(err.name, "net.connman.iwd.Busy")
        self.assertEqual(err.reason, "Operation already in progress")
        self.assertEqual(str(err), "Operation already in progress")

    def test_call_error_defaults_to_rejected(self):
        err = CallError("nope")
        self.assertEqual(err.kind, REJECTED)
        self.assertFalse(err.transient)


# ═══════════════════════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════════════════════
class TestSettings(unittest.TestCase):
    """Tests for Settings.update coercion rules."""

    def test_defaults(self):
        s = Settings()
        self.assertEqual(s.launcher, "dmenu")
        self.assertEqual(s.icon_type, "font")
        self.assertEqual(s.spaces, 1)
        self.assertTrue(s.notifications)

    def test_spaces_coerced(self):
        s = Settings()
        s.update({"spaces": "3"})
        self.assertEqual(s.spaces, 3)

    def test_negative_spaces_clamped(self):
        s = Settings()
        s.update({"spaces": -2})
        self.assertEqual(s.spaces, 0)

    def test_invalid_spaces_ignored(self):
        s = Settings()
        s.update({"spaces": "many"})
        self.assertEqual(s.spaces, 1)

    def test_unknown_keys_ignored(self):
        s = Settings()
        s.update({"colour": "blue"})
        self.assertFalse(hasattr(s, "colour"))

    def test_notifications_from_string(self):
        s = Settings()
        s.update({"notifications": "off"})
        self.assertFalse(s.notifications)

    def test_menu_command_implies_custom(self):
        s = Settings()
        s.update({"menu_command": "fuzzel -d"})
        self.assertEqual(s.launcher, "custom")

    def test_explicit_launcher_kept_with_command(self):
        s = Settings()
        s.update({"menu_command": "fuzzel -d", "launcher": "rofi"})
        self.assertEqual(s.launcher, "rofi")


class TestLoadSettings(unittest.TestCase):
    """Tests for load_settings file and environment merging."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmpdir.name, "config.json")

    def tearDown(self):
        self.tmpdir.cleanup()

    def _write(self, text):
        with open(self.path, "w", encoding="utf-8") as f:
            f.write(text)

    def test_missing_file_gives_defaults(self):
        s = load_settings(self.path, environ={})
        self.assertEqual(s, Settings())

    def test_file_values(self):
        self._write(json.dumps({"launcher": "fuzzel", "icon_type": "xdg"}))
        s = load_settings(self.path, environ={})
        self.assertEqual(s.launcher, "fuzzel")
        self.assertEqual(s.icon_type, "xdg")

    def test_environment_overrides_file(self):
        self._write(json.dumps({"launcher": "fuzzel", "spaces": 2}))
        s = load_settings(self.path, environ={"IWMENU_LAUNCHER": "rofi",
                                              "IWMENU_SPACES": "4"})
        self.assertEqual(s.launcher, "rofi")
        self.assertEqual(s.spaces, 4)

    def test_invalid_json_ignored(self):
        self._write("{not json")
        with self.assertLogs("iwmenu.config", level="WARNING"):
            s = load_settings(self.path, environ={})
        self.assertEqual(s, Settings())

    def test_non_object_ignored(self):
        self._write("[1, 2]")
        with self.assertLogs("iwmenu.config", level="WARNING"):
            s = load_settings(self.path, environ={})
        self.assertEqual(s.launcher, "dmenu")


if __name__ == "__main__":
    unittest.main()
