"""CLI entry point for iwmenu."""

import argparse
import logging
import os
import signal
import sys

from .. import __version__
from ..config import ICON_TYPES, LAUNCHERS, load_settings
from ..errors import IwmenuError
from ..factory import create_bus
from ..launcher import SubprocessSelector
from ..notification import Notifier
from ..session import SessionController

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="iwmenu",
        description="Manage iwd Wi-Fi connections through a menu launcher.",
    )
    parser.add_argument("-l", "--launcher", choices=LAUNCHERS,
                        help="Menu launcher to use (default: dmenu)")
    parser.add_argument("--menu-command", metavar="TEMPLATE",
                        help="Command template for the custom launcher, "
                             "e.g. \"fuzzel -d {password_flag:--password} "
                             "-p '{prompt}'\"")
    parser.add_argument("-i", "--icon", choices=ICON_TYPES, dest="icon_type",
                        help="Icon style (default: font)")
    parser.add_argument("-s", "--spaces", type=int, metavar="N",
                        help="Spaces between a font icon and its text")
    parser.add_argument("--no-notifications", action="store_true",
                        help="Do not send desktop notifications")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase log verbosity (-v, -vv)")
    parser.add_argument("--version", action="version",
                        version=f"%(prog)s {__version__}")
    return parser


def setup_logging(verbosity: int, environ=None) -> None:
    """Configure the root logger on stderr."""
    environ = os.environ if environ is None else environ
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = getattr(logging, environ.get("IWMENU_LOG_LEVEL", "WARNING").upper(),
                        logging.WARNING)
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def resolve_settings(args, environ=None):
    """Merge CLI flags over the config file and the environment.

    Raises:
        ValueError: If the custom launcher has no command template.
    """
    settings = load_settings(environ=environ)
    overrides = {
        "launcher": args.launcher,
        "menu_command": args.menu_command,
        "icon_type": args.icon_type,
        "spaces": args.spaces,
    }
    if args.no_notifications:
        overrides["notifications"] = False
    settings.update({k: v for k, v in overrides.items() if v is not None})
    if settings.launcher == "custom" and not settings.menu_command:
        raise ValueError("--launcher custom requires --menu-command")
    return settings


def _terminate(signum, _frame):
    # Unwinds through SessionController.run(), which kills the launcher
    raise SystemExit(128 + signum)


def main(argv=None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = resolve_settings(args)
    except ValueError as e:
        parser.error(str(e))

    signal.signal(signal.SIGTERM, _terminate)

    controller = SessionController(
        create_bus(),
        SubprocessSelector(settings),
        settings=settings,
        notifier=Notifier(settings.notifications),
    )
    try:
        outcome = controller.run()
    except KeyboardInterrupt:
        log.info("Interrupted")
        return 130
    except IwmenuError as e:
        log.error("%s", e)
        print(f"iwmenu: {e}", file=sys.stderr)
        return 1

    if outcome is not None and outcome.success:
        log.info("Connected to network: %s", outcome.ssid)
    return 0


if __name__ == "__main__":
    sys.exit(main())
