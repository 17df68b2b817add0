"""Command-line entry point.

Usage::

    sitemon [--config PATH] run          # monitor every configured site until SIGTERM
    sitemon [--config PATH] check        # probe each site once and print the results
    sitemon [--config PATH] show-config  # print the resolved configuration
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from typing import Callable, Dict, Optional, Sequence

import configuration

from .http_probe import HttpProbe
from .log_recorder import LogRecorder
from .notifier import build_notifier
from .service import Supervisor
from .state_machine import ProbeResult

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SITE_DOWN = 1
EXIT_CONFIG_ERROR = 2

Command = Callable[[configuration.Settings], int]


def run_command(settings: configuration.Settings) -> int:
    configuration.configure_logging(settings.logging)
    supervisor = Supervisor(
        settings,
        recorder=LogRecorder(),
        notifier=build_notifier(settings.telegram),
        probe=HttpProbe(settings.request_timeout),
    )

    def _handle_sigterm(signum, frame):  # noqa: ARG001 - signal signature
        supervisor.shutdown()

    signal.signal(signal.SIGTERM, _handle_sigterm)
    supervisor.start(settings.sites)
    return EXIT_OK


def check_command(settings: configuration.Settings) -> int:
    probe = HttpProbe(settings.request_timeout)
    exit_code = EXIT_OK
    for site in settings.sites:
        try:
            result = probe.run(site)
        except Exception as exc:
            LOGGER.exception("check.site.probe_error site=%s error=%s",
                             site.identifier, exc)
            result = ProbeResult(None)
        status = "UP" if result.succeeded else "DOWN"
        print(f"{site.identifier} {result.code_text} {status}")
        if not result.succeeded:
            exit_code = EXIT_SITE_DOWN
    return exit_code


def show_config_command(settings: configuration.Settings) -> int:
    print(json.dumps(settings.as_dict(), indent=2, ensure_ascii=False))
    return EXIT_OK


COMMANDS: Dict[str, Command] = {
    "run": run_command,
    "check": check_command,
    "show-config": show_config_command,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sitemon",
        description="Monitor HTTP sites and alert on sustained outages.",
    )
    parser.add_argument(
        "--config",
        help=f"path to the INI file (default: ${configuration.CONFIG_PATH_ENV}, "
        "./sitemon.ini, /etc/sitemon/sitemon.ini)",
    )
    parser.add_argument("command",
                        nargs="?",
                        default="run",
                        choices=sorted(COMMANDS))
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = configuration.load_settings(args.config)
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    return COMMANDS[args.command](settings)

