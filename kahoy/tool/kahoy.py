"""Command line tool for applying Kubernetes manifests with kahoy."""

import argparse
import asyncio
import logging
import sys
import traceback

from kahoy.config import DEFAULT_CONFIG_FILE
from kahoy.exceptions import KahoyException
from . import apply, version

_LOGGER = logging.getLogger(__name__)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Maintain Kubernetes resources in sync easily.",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging, same as --log-level=DEBUG",
    )
    parser.add_argument(
        "--no-log",
        action="store_true",
        help="Disable all logging",
    )
    parser.add_argument(
        "--config-file",
        default=None,
        help=f"Kahoy app configuration file, '{DEFAULT_CONFIG_FILE}' when present",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    apply.ApplyAction.register(subparsers)
    version.VersionAction.register(subparsers)
    return parser


def main(argv: list[str] | None = None) -> None:
    """Kahoy command line tool main entry point."""
    parser = _make_parser()
    args = parser.parse_args(argv)

    if args.debug:
        args.log_level = "DEBUG"
    if args.no_log:
        logging.disable(logging.CRITICAL)
    else:
        logging.basicConfig(level=args.log_level, stream=sys.stderr)

    action = args.cls()
    try:
        asyncio.run(action.run(**vars(args)))
    except KahoyException as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("kahoy error: ", err, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
