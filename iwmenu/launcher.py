"""iwmenu - Selector processes.

Runs the configured launcher (fuzzel, rofi, dmenu, walker or a custom
command template) as a child process: menu lines go to its stdin, the
chosen line comes back on stdout. The child leads its own process group
so it can be terminated together with anything it spawned.
"""

import logging
import os
import signal
import subprocess
import threading
from typing import List, Optional

from .config import SELECTOR_KILL_GRACE, Settings
from .errors import SelectorError
from .interfaces import SelectorHandle, SelectorInterface
from .models import MenuPage
from .template import TemplateContext, resolve

log = logging.getLogger(__name__)


def build_argv(launcher: str, ctx: TemplateContext, icon_type: str = 'font',
               menu_command: Optional[str] = None) -> List[str]:
    """Return the argv that runs *launcher* for *ctx*.

    Raises:
        SelectorError: For an unknown launcher, a custom launcher without
            a command, or a template that does not split.
    """
    placeholder = ctx.placeholder_text

    if launcher == 'fuzzel':
        argv = ['fuzzel', '-d']
        if icon_type == 'font':
            argv.append('-I')
        if placeholder:
            argv += ['--placeholder', placeholder]
        if ctx.password:
            argv.append('--password')
        return argv

    if launcher == 'rofi':
        argv = ['rofi', '-m', '-1', '-dmenu']
        if icon_type == 'xdg':
            argv.append('-show-icons')
        if placeholder:
            argv += ['-theme-str', f'entry {{ placeholder: "{placeholder}"; }}']
        if ctx.password:
            argv.append('-password')
        return argv

    if launcher == 'dmenu':
        argv = ['dmenu']
        if ctx.prompt:
            argv += ['-p', f'{ctx.prompt}: ']
        return argv

    if launcher == 'walker':
        argv = ['walker', '-d', '-k']
        if placeholder:
            argv += ['-p', placeholder]
        if ctx.password:
            argv.append('-y')
        return argv

    if launcher == 'custom':
        if not menu_command:
            raise SelectorError('The custom launcher needs a menu command')
        try:
            argv = resolve(menu_command, ctx).argv
        except ValueError as e:
            raise SelectorError(f'Cannot parse menu command: {e}') from e
        if not argv:
            raise SelectorError('The menu command is empty')
        return argv

    raise SelectorError(f'Unknown launcher: {launcher}')


class SubprocessHandle(SelectorHandle):
    """A running launcher child."""

    def __init__(self, process: subprocess.Popen, payload: str,
                 kill_grace: float = SELECTOR_KILL_GRACE):
        self._process = process
        self.kill_grace = kill_grace
        self._stdout = b''
        self._cancelled = False
        self._done = threading.Event()
        self._reader = threading.Thread(target=self._communicate,
                                        args=(payload,), name='iwmenu-selector',
                                        daemon=True)
        self._reader.start()

    def _communicate(self, payload: str) -> None:
        try:
            self._stdout, _ = self._process.communicate(payload.encode('utf-8'))
        except (OSError, ValueError) as e:
            log.warning('Selector I/O failed: %s', e)
        finally:
            self._done.set()

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    def poll(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        self._done.wait(timeout)
        return self.poll()

    def output(self) -> Optional[str]:
        if not self.poll() or self._cancelled:
            return None
        if self._process.returncode:
            log.debug('Selector exited with status %s', self._process.returncode)
            return None
        text = self._stdout.decode('utf-8', errors='replace').strip()
        return text or None

    def cancel(self) -> None:
        if self.poll():
            return
        self._cancelled = True
        self._signal(signal.SIGTERM)
        if not self._done.wait(self.kill_grace):
            log.debug('Selector ignored SIGTERM, killing it')
            self._signal(signal.SIGKILL)

    def _signal(self, signum: int) -> None:
        try:
            os.killpg(self._process.pid, signum)
        except (ProcessLookupError, PermissionError) as e:
            log.debug('Selector already gone: %s', e)


class SubprocessSelector(SelectorInterface):
    """Renders pages through the configured launcher."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._active: List[SubprocessHandle] = []
        self._lock = threading.Lock()

    def argv_for(self, page: MenuPage) -> List[str]:
        ctx = TemplateContext(prompt=page.prompt, password=page.password)
        return build_argv(self.settings.launcher, ctx, self.settings.icon_type,
                          self.settings.menu_command)

    def open(self, page: MenuPage) -> SubprocessHandle:
        """Spawn the launcher for *page*.

        Raises:
            SelectorError: If the launcher cannot be started.
        """
        argv = self.argv_for(page)
        log.debug('Running selector: %s', argv[0])
        try:
            process = subprocess.Popen(argv, stdin=subprocess.PIPE,
                                       stdout=subprocess.PIPE,
                                       start_new_session=True)
        except OSError as e:
            raise SelectorError(f'Cannot run {argv[0]}: {e}') from e
        payload = page.render()
        handle = SubprocessHandle(process, payload + '\n' if payload else '')
        with self._lock:
            self._active = [h for h in self._active if not h.poll()]
            self._active.append(handle)
        return handle

    def terminate_all(self) -> None:
        """Kill every selector still running (signal handlers use this)."""
        with self._lock:
            handles, self._active = self._active, []
        for handle in handles:
            handle.cancel()
