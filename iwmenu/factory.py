"""iwmenu - Backend factory.

Factory pattern to create the daemon session.
Enables dependency injection for testing.
"""

import os


def create_bus(environ=None):
    """Create a bus instance based on environment mode.

    Environment:
        IWMENU_MODE: 'production' (default) or 'test'

    Returns:
        Unconnected BusInterface implementation.
    """
    environ = os.environ if environ is None else environ
    mode = environ.get("IWMENU_MODE", "production")

    if mode == "test":
        from .mock_backend import demo_bus

        return demo_bus()

    # Gio is only needed against a real daemon
    from .bus import GioBus

    return GioBus()
