"""
Command-line entry points.

    minipush DEVICE IMAGE   push IMAGE to the device, then open a terminal
    miniterm DEVICE         terminal only

Both tools wait for the device to appear, survive unplug/replug cycles, and
exit on Ctrl-C inside the terminal.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from . import __version__
from .push import MiniPush
from .supervisor import ConnectionSupervisor
from .term import MiniTerm
from .tool import SerialTool


def _base_parser(prog: str, description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description=description)
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log protocol and connection details to stderr",
    )
    parser.add_argument(
        "device",
        help="Serial device, e.g. /dev/ttyUSB0 or COM3",
    )
    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def _run(tool: SerialTool) -> int:
    print(f"{tool.banner}\n")
    try:
        return ConnectionSupervisor(tool).run()
    except KeyboardInterrupt:
        return 130


def minipush_main(argv: Optional[list[str]] = None) -> int:
    """Entry point for ``minipush``."""
    parser = _base_parser("minipush", "Push a binary image over serial, then open a terminal.")
    parser.add_argument("image", help="Path to the binary image")
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    return _run(MiniPush(args.device, args.image))


def miniterm_main(argv: Optional[list[str]] = None) -> int:
    """Entry point for ``miniterm``."""
    parser = _base_parser("miniterm", "Interactive serial terminal.")
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    return _run(MiniTerm(args.device))


if __name__ == "__main__":
    sys.exit(minipush_main())
