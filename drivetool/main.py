"""Command line entry point for drivetool."""

from __future__ import annotations

import argparse
from typing import Callable, Optional

from drivetool.__version__ import __version__
from drivetool.config import settings
from drivetool.domain import TransferStrategy
from drivetool.logging import LoggerFactory, setup_logging
from drivetool.services.workflows import WorkflowOptions, format_device, transfer_to_device
from drivetool.storage import capabilities
from drivetool.storage.devices import format_inventory, list_block_devices
from drivetool.storage.exceptions import DrivetoolError, FormatDeclinedError
from drivetool.storage.primitives import ShellPrimitives, SystemPrimitives
from drivetool.ui import confirmation


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_DECLINED = 3

EXAMPLES = """\
examples:
  drivetool copy /path/to/data /dev/sdx    copy /path/to/data onto /dev/sdx
  drivetool mirror /path/to/data /dev/sdx  mirror /path/to/data onto /dev/sdx
  drivetool list                           list block devices
  drivetool format /dev/sdx                format /dev/sdx as exFAT
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="drivetool",
        description="Mount, copy with verification, and format removable drives",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Also log raw command output")
    parser.add_argument("--no-log-file", action="store_true", help="Log to stderr only")
    parser.add_argument("--mount-point", help="Mount point used for transfers")
    parser.add_argument(
        "--identity-policy",
        choices=settings.IDENTITY_POLICIES,
        help="How to treat a mount point already bound to another device",
    )
    parser.add_argument(
        "--sudo",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Prefix privileged commands with sudo (default: when not root)",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    copy_parser = subparsers.add_parser(
        "copy", help="Mount DEVICE, copy SOURCE onto it, verify and unmount"
    )
    copy_parser.add_argument("source", metavar="SOURCE")
    copy_parser.add_argument("device", metavar="DEVICE")

    mirror_parser = subparsers.add_parser(
        "mirror", help="Mount DEVICE, mirror SOURCE onto it with rsync, verify and unmount"
    )
    mirror_parser.add_argument("source", metavar="SOURCE")
    mirror_parser.add_argument("device", metavar="DEVICE")

    format_parser = subparsers.add_parser("format", help="Unmount and format DEVICE")
    format_parser.add_argument("device", metavar="DEVICE")
    format_parser.add_argument(
        "-y", "--yes", action="store_true", help="Do not ask before overwriting existing data"
    )
    format_parser.add_argument(
        "--filesystem",
        choices=settings.SUPPORTED_FILESYSTEMS,
        help="Filesystem type (default: exfat)",
    )
    format_parser.add_argument("--label", help="Volume label")

    subparsers.add_parser("list", help="List information about block devices")
    return parser


def run(
    args: argparse.Namespace,
    primitives: SystemPrimitives,
    use_sudo: bool,
    which: Optional[Callable[[str], Optional[str]]] = None,
) -> int:
    log = LoggerFactory.for_system()
    options = WorkflowOptions.from_settings(
        mount_point=args.mount_point,
        identity_policy=args.identity_policy,
        filesystem=getattr(args, "filesystem", None),
        label=getattr(args, "label", None),
    )

    try:
        capabilities.verify(
            capabilities.required_capabilities(args.command, use_sudo=use_sudo),
            filesystem=options.filesystem,
            which=which,
        )

        if args.command == "list":
            print(format_inventory(list_block_devices(primitives)))
        elif args.command in ("copy", "mirror"):
            result = transfer_to_device(
                args.source,
                args.device,
                TransferStrategy(args.command),
                primitives,
                options,
            )
            print(f"{result.source} -> {result.destination}: verified")
        elif args.command == "format":
            confirm = confirmation.always(True) if args.yes else confirmation.terminal_prompt()
            format_device(args.device, confirm, primitives, options)
    except FormatDeclinedError as error:
        log.warning(str(error))
        return EXIT_DECLINED
    except DrivetoolError as error:
        log.error(str(error))
        return EXIT_FAILURE
    return EXIT_OK


def main(argv=None, primitives: Optional[SystemPrimitives] = None, which=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return EXIT_USAGE

    setup_logging(debug=args.debug, trace=args.trace, file_logging=not args.no_log_file)

    use_sudo = args.sudo if args.sudo is not None else settings.resolve_use_sudo()
    if primitives is None:
        primitives = ShellPrimitives(use_sudo=use_sudo)
    return run(args, primitives, use_sudo, which=which)


if __name__ == "__main__":
    raise SystemExit(main())
