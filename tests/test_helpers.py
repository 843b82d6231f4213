"""
Shared test utilities for iwmenu tests.

Provides gi stubs for headless runs and small fixtures around the mock
daemon so scenarios read as a list of menu choices.
"""

import os
import sys
import types

REPO_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_DIR not in sys.path:
    sys.path.insert(0, REPO_DIR)

# gi.repository modules iwmenu touches.
DEFAULT_GI_MODULES = ("Gio", "GLib")


def create_gi_mocks(extra_modules=()):
    """
    Create mock gi modules for headless testing.

    Returns a tuple of (gi_mock, repo_mock) that can be installed into
    sys.modules so iwmenu.bus imports without PyGObject.
    """
    gi_mock = types.ModuleType("gi")
    gi_mock.require_version = lambda *a, **kw: None

    repo_mock = types.ModuleType("gi.repository")

    class _StubMeta(type):
        def __getattr__(cls, name):
            return _Stub

    class _Stub(metaclass=_StubMeta):
        """No-op stand-in for any Gio/GLib object."""

        def __init__(self, *a, **kw):
            pass

        def __init_subclass__(cls, **kw):
            pass

        def __getattr__(self, name):
            return _stub_func

    def _stub_func(*a, **kw):
        return _Stub()

    class _StubModule:
        def __getattr__(self, name):
            return _Stub

    for name in (*DEFAULT_GI_MODULES, *extra_modules):
        setattr(repo_mock, name, _StubModule())

    return gi_mock, repo_mock


def install_gi_mocks(extra_modules=(), *, use_setdefault=True):
    """Create **and** install gi mocks into ``sys.modules``.

    With *use_setdefault* (the default) a real PyGObject that is already
    imported is kept.
    """
    gi_mock, repo_mock = create_gi_mocks(extra_modules)
    if use_setdefault:
        sys.modules.setdefault("gi", gi_mock)
        sys.modules.setdefault("gi.repository", repo_mock)
    else:
        sys.modules["gi"] = gi_mock
        sys.modules["gi.repository"] = repo_mock
    return gi_mock, repo_mock


def make_controller(bus, responses=(), **kwargs):
    """Build a SessionController on *bus* driven by scripted *responses*.

    Returns (controller, selector, notifier).
    """
    from iwmenu.config import Settings
    from iwmenu.mock_backend import ScriptedSelector
    from iwmenu.notification import Notifier
    from iwmenu.session import SessionController

    selector = ScriptedSelector(responses)
    notifier = Notifier(enabled=False)
    kwargs.setdefault("result_pause", 0)
    kwargs.setdefault("connect_timeout", 5)
    kwargs.setdefault("agent_wait", 1)
    settings = kwargs.pop("settings", None) or Settings(language="English")
    controller = SessionController(bus, selector, settings, notifier, **kwargs)
    return controller, selector, notifier


def page_texts(page):
    """Return the display texts of a page's entries."""
    return [entry.text for entry in page.entries]
