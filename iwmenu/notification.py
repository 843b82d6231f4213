"""iwmenu - Desktop notifications via notify-send."""

import logging
import subprocess
from typing import List

from . import __app_id__, __app_name__
from .config import NOTIFICATION_TIMEOUT_MS
from .icons import get_xdg_icon

log = logging.getLogger(__name__)


def _run_command(cmd: List[str], timeout: int = 5) -> subprocess.CompletedProcess:
    """Execute a command and return the CompletedProcess result.

    Raises:
        FileNotFoundError: If the command is not installed.
        subprocess.TimeoutExpired: If the command times out.
    """
    return subprocess.run(
        cmd,
        capture_output=True,
        text=True,
        timeout=timeout,
    )


class Notifier:
    """Sends desktop notifications; a no-op when disabled."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.sent: List[str] = []

    def send(self, body: str, summary: str = __app_name__,
             icon: str = 'network_wireless',
             timeout_ms: int = NOTIFICATION_TIMEOUT_MS) -> bool:
        """Show *body* as a notification.

        Args:
            body: Notification text.
            summary: Notification title.
            icon: Icon key from iwmenu.icons (mapped to an xdg name).
            timeout_ms: Expiry in milliseconds.

        Returns:
            True if notify-send ran successfully.
        """
        log.info("%s", body)
        self.sent.append(body)
        if not self.enabled:
            return False
        cmd = ['notify-send', '-a', __app_id__, '-i', get_xdg_icon(icon),
               '-t', str(timeout_ms), summary, body]
        try:
            result = _run_command(cmd)
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            log.debug('notify-send unavailable: %s', e)
            return False
        if result.returncode != 0:
            log.debug('notify-send failed: %s', result.stderr.strip())
            return False
        return True
