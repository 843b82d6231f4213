"""Configuration constants and user settings for iwmenu."""

import json
import logging
import os
from dataclasses import dataclass, fields
from typing import Optional

log = logging.getLogger(__name__)

# --- iwd D-Bus surface ---
IWD_SERVICE = "net.connman.iwd"
IWD_ROOT_PATH = "/"
IWD_AGENT_MANAGER_PATH = "/net/connman/iwd"

OBJECT_MANAGER_IFACE = "org.freedesktop.DBus.ObjectManager"
PROPERTIES_IFACE = "org.freedesktop.DBus.Properties"

ADAPTER_IFACE = "net.connman.iwd.Adapter"
DEVICE_IFACE = "net.connman.iwd.Device"
STATION_IFACE = "net.connman.iwd.Station"
NETWORK_IFACE = "net.connman.iwd.Network"
KNOWN_NETWORK_IFACE = "net.connman.iwd.KnownNetwork"
ACCESS_POINT_IFACE = "net.connman.iwd.AccessPoint"
AGENT_MANAGER_IFACE = "net.connman.iwd.AgentManager"
AGENT_IFACE = "net.connman.iwd.Agent"

AGENT_PATH = "/org/iwmenu/Agent"
AGENT_CANCELED_ERROR = "net.connman.iwd.Agent.Error.Canceled"

# --- Timeouts ---
CALL_TIMEOUT_MS = 25000          # Blocking daemon calls
CONNECT_CALL_TIMEOUT_MS = 180000  # Network.Connect stays open during auth
CONNECT_TIMEOUT_SECONDS = 90     # Controller wait for a connect outcome
AUTH_TIMEOUT_SECONDS = 60        # Unanswered agent request is cancelled
AGENT_WAIT_SECONDS = 15          # Wait for the agent after Connect()
RESULT_PAUSE_SECONDS = 1.0       # Pause between Result and the next menu
POLL_INTERVAL = 0.1              # Granularity of combined waits
SELECTOR_KILL_GRACE = 1.0        # SIGTERM to SIGKILL for a stuck launcher

# --- Presentation ---
NOTIFICATION_TIMEOUT_MS = 3000
DEFAULT_SPACES = 1
LAUNCHERS = ("fuzzel", "rofi", "dmenu", "walker", "custom")
ICON_TYPES = ("font", "xdg")

# Signal strength thresholds in 100 * dBm, strongest first
SIGNAL_THRESHOLDS = (
    (-5000, 4),  # Excellent
    (-6000, 3),  # Good
    (-7000, 2),  # Fair
    (-8000, 1),  # Weak
)

# --- State Persistence ---
CONFIG_DIR = os.path.join(
    os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config")), "iwmenu"
)
CONFIG_FILE = os.path.join(CONFIG_DIR, "config.json")

# Environment variable -> Settings field
ENV_OVERRIDES = {
    "IWMENU_LAUNCHER": "launcher",
    "IWMENU_COMMAND": "menu_command",
    "IWMENU_ICON": "icon_type",
    "IWMENU_SPACES": "spaces",
    "IWMENU_LANG": "language",
}


@dataclass
class Settings:
    """User-facing options, merged from file, environment and CLI."""
    launcher: str = "dmenu"
    menu_command: Optional[str] = None
    icon_type: str = "font"
    spaces: int = DEFAULT_SPACES
    language: Optional[str] = None
    notifications: bool = True

    def update(self, values: dict) -> None:
        """Apply known keys from *values*, coercing types; ignore the rest."""
        known = {f.name for f in fields(self)}
        for key, value in values.items():
            if key not in known or value is None:
                continue
            if key == "spaces":
                try:
                    value = max(0, int(value))
                except (TypeError, ValueError):
                    log.warning("Ignoring invalid spaces value: %r", value)
                    continue
            elif key == "notifications" and isinstance(value, str):
                value = value.strip().lower() not in ("0", "no", "false", "off")
            setattr(self, key, value)
        if self.menu_command and "launcher" not in values and self.launcher != "custom":
            # A bare command template means a custom launcher
            self.launcher = "custom"


def load_settings(path: Optional[str] = None, environ=None) -> Settings:
    """Build Settings from defaults, the JSON config file and the environment.

    Args:
        path: Config file to read (default: CONFIG_FILE).
        environ: Mapping used instead of os.environ (for tests).

    Returns:
        A Settings instance. CLI flags are applied on top by the caller.
    """
    settings = Settings()
    path = path or CONFIG_FILE
    environ = os.environ if environ is None else environ

    if os.path.exists(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, dict):
                settings.update(data)
            else:
                log.warning("Ignoring %s: expected a JSON object", path)
        except (OSError, ValueError) as e:
            log.warning("Ignoring unreadable config %s: %s", path, e)

    env_values = {}
    for var, key in ENV_OVERRIDES.items():
        if environ.get(var):
            env_values[key] = environ[var]
    settings.update(env_values)
    return settings
