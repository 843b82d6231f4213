"""iwmenu - iwd Wi-Fi management through any dmenu-style launcher.

Drives the iwd daemon over D-Bus and pipes text menus through a
user-chosen selector process (dmenu, rofi, fuzzel, walker or a custom
command line).

Usage:
    from iwmenu.factory import create_bus
    from iwmenu.session import SessionController

    bus = create_bus()
    bus.connect()
    SessionController(bus, selector, settings).run()
"""

__version__ = "1.0.0"
__app_id__ = "iwmenu"
__app_name__ = "iNet Wireless Menu"
