"""iwmenu - Menu icons.

Two renderings are supported: Nerd Font glyphs prefixed to the text
('font'), and freedesktop icon names appended in the rofi/fuzzel
'text\\0icon\\x1fname' form ('xdg'). Xdg definitions carry a comma
separated fallback list; the first name is used where only one fits.
"""

from .models import Security

FONT_ICONS = {
    'signal_weak_open': '\U000f16cb',
    'signal_weak_secure': '\U000f0921',
    'signal_ok_open': '\U000f16cc',
    'signal_ok_secure': '\U000f0924',
    'signal_good_open': '\U000f16cd',
    'signal_good_secure': '\U000f0927',
    'signal_excellent_open': '\U000f16ce',
    'signal_excellent_secure': '\U000f092a',
    'connected': '\U000f05a9',
    'disconnected': '\U000f16bc',
    'connect': '\U000f0337',
    'disconnect': '\U000f0338',
    'scan': '\uf46a',
    'scanning': '\uf46a',
    'known_networks': '\U000f05a9',
    'hidden_network': '\U000f16bc',
    'settings': '\U000f0493',
    'disable_adapter': '\U000f092d',
    'power_on_device': '\U000f0425',
    'switch_mode': '\U000f0fe2',
    'start_ap': '\U000f040d',
    'stop_ap': '\U000f0667',
    'set_ssid': '\U000f08d5',
    'set_password': '\U000f0bc5',
    'enable_autoconnect': '\U000f006a',
    'disable_autoconnect': '\U000f19e7',
    'forget_network': '\U000f0377',
    'station': '\U000f059f',
    'access_point': '\U000f0003',
    'ok': '\U000f05e1',
    'error': '\U000f05d6',
    'network_wireless': '\U000f05a9',
}

XDG_ICONS = {
    'signal_weak_open': 'network-wireless-signal-weak-symbolic,network-wireless-symbolic',
    'signal_ok_open': 'network-wireless-signal-ok-symbolic,network-wireless-symbolic',
    'signal_good_open': 'network-wireless-signal-good-symbolic,network-wireless-symbolic',
    'signal_excellent_open': 'network-wireless-signal-excellent-symbolic,network-wireless-symbolic',
    'signal_weak_secure': 'network-wireless-signal-weak-secure-symbolic,'
                          'network-wireless-signal-weak-symbolic,network-wireless-symbolic',
    'signal_ok_secure': 'network-wireless-signal-ok-secure-symbolic,'
                        'network-wireless-signal-ok-symbolic,network-wireless-symbolic',
    'signal_good_secure': 'network-wireless-signal-good-secure-symbolic,'
                          'network-wireless-signal-good-symbolic,network-wireless-symbolic',
    'signal_excellent_secure': 'network-wireless-signal-excellent-secure-symbolic,'
                               'network-wireless-signal-excellent-symbolic,network-wireless-symbolic',
    'scan': 'view-refresh-symbolic,sync-synchronizing-symbolic,emblem-synchronizing',
    'scanning': 'emblem-synchronizing-symbolic,view-refresh-symbolic',
    'known_networks': 'network-wireless-connected-symbolic,network-wireless-symbolic',
    'hidden_network': 'network-wireless-no-route-symbolic,network-wireless-symbolic',
    'disable_adapter': 'network-wireless-disabled-symbolic,'
                       'network-wireless-hardware-disabled-symbolic,network-wireless-off',
    'set_password': 'dialog-password-symbolic,device-security-symbolic,changes-prevent',
    'enable_autoconnect': 'media-playlist-repeat-symbolic,media-repeat-symbolic',
    'disable_autoconnect': 'media-playlist-repeat-song-symbolic,'
                           'media-playlist-no-repeat-symbolic,media-repeat-none-symbolic',
    'connected': 'network-wireless-symbolic,network-wireless-connected-symbolic',
    'disconnected': 'network-wireless-offline-symbolic,network-wireless-disconnected-symbolic',
    'connect': 'network-connect-symbolic,entries-linked-symbolic,link-symbolic',
    'disconnect': 'network-disconnect-symbolic,entries-unlinked-symbolic,media-eject-symbolic',
    'settings': 'preferences-system-symbolic',
    'power_on_device': 'system-shutdown-symbolic',
    'switch_mode': 'media-playlist-repeat-symbolic',
    'start_ap': 'media-playback-start-symbolic',
    'stop_ap': 'media-playback-stop-symbolic',
    'set_ssid': 'edit-symbolic',
    'forget_network': 'list-remove-symbolic',
    'station': 'network-wireless-symbolic',
    'access_point': 'network-wireless-hotspot-symbolic',
    'ok': 'emblem-default-symbolic',
    'error': 'dialog-error-symbolic',
    'network_wireless': 'network-wireless-symbolic',
}

# Marks the connected network after its name
CONNECTED_MARK_FONT = '\u23fa'
CONNECTED_MARK_XDG = '\u2705'

# Icon buckets of iwd's signal strength (100 * dBm)
_SIGNAL_BUCKETS = (
    (-2500, 'excellent'),
    (-5000, 'good'),
    (-7500, 'ok'),
)


def get_icon(key, icon_type):
    """Return the glyph or the xdg fallback list for *key* ('' if unknown)."""
    if icon_type == 'font':
        return FONT_ICONS.get(key, '')
    if icon_type == 'xdg':
        return XDG_ICONS.get(key, '')
    return ''


def get_xdg_icon(key):
    """Return the preferred xdg icon name for *key*."""
    return XDG_ICONS.get(key, '').split(',')[0].strip()


def signal_icon_key(dbm, security):
    level = 'weak'
    for threshold, name in _SIGNAL_BUCKETS:
        if dbm > threshold:
            level = name
            break
    kind = 'secure' if security.needs_secret else 'open'
    return f'signal_{level}_{kind}'


def format_line(text, icon, icon_type, spaces):
    """Return (line, display_text) for a menu entry.

    The display text is what the launcher prints when the line is chosen:
    the whole line for glyph icons, the label alone for xdg icons.
    """
    if icon_type == 'xdg':
        line = f'{text}\0icon\x1f{icon}' if icon else text
        return line, text
    if icon_type == 'font' and icon:
        line = f'{icon}{" " * spaces}{text}'
        return line, line
    return text, text


def network_label(ssid, connected, icon_type, spaces):
    if not connected:
        return ssid
    if icon_type == 'xdg':
        return f'{ssid} {CONNECTED_MARK_XDG}'
    return f'{ssid}{" " * spaces}{CONNECTED_MARK_FONT}'


def known_network_icon_key(security):
    """Icon key used for a known network that is not in range."""
    if security == Security.HIDDEN:
        return 'hidden_network'
    return 'known_networks'
