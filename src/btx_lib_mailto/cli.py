"""Command-line adapter feeding flags into :class:`EmailIntentBuilder`."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING

from . import __init__conf__
from .lib_mailto import (
    ConfMailto,
    EmailIntentBuilder,
    InvalidArgumentError,
    LaunchContext,
    SystemLauncher,
    conf,
    logger,
)

if TYPE_CHECKING:
    from typing import Sequence


@dataclass
class Args:
    """Parsed command-line arguments."""

    recipients: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    subject: str | None = None
    body: str | None = None
    body_file: Path | None = None
    attachment: Path | None = None
    open_command: str | None = None
    print_only: bool = False
    info: bool = False
    verbose: bool = False


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog=__init__conf__.shell_command,
        description="Compose a mailto: request and open it in the default mail client.",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__init__conf__.version}",
    )

    parser.add_argument(
        "recipients",
        nargs="*",
        metavar="recipient",
        help="Email recipient address(es)",
    )

    parser.add_argument(
        "-c",
        dest="cc",
        action="append",
        default=[],
        metavar="addr",
        help="Carbon copy recipient (can be specified multiple times)",
    )

    parser.add_argument(
        "-b",
        dest="bcc",
        action="append",
        default=[],
        metavar="addr",
        help="Blind carbon copy recipient (can be specified multiple times)",
    )

    parser.add_argument(
        "-s",
        dest="subject",
        metavar="subject",
        help="Subject line of the message",
    )

    body_group = parser.add_mutually_exclusive_group()
    body_group.add_argument(
        "--body",
        dest="body",
        metavar="text",
        help="Body text of the message",
    )
    body_group.add_argument(
        "--body-file",
        dest="body_file",
        metavar="file",
        type=Path,
        help="Read the body from a file ('-' reads stdin)",
    )

    parser.add_argument(
        "-a",
        dest="attachment",
        metavar="file",
        type=Path,
        help="Attach a file",
    )

    parser.add_argument(
        "--open-command",
        dest="open_command",
        metavar="cmd",
        help="Command used instead of the platform opener; the URI is appended",
    )

    parser.add_argument(
        "--print",
        dest="print_only",
        action="store_true",
        help="Print the mailto: URI instead of launching the mail client",
    )

    parser.add_argument(
        "--info",
        action="store_true",
        help="Show package information and exit",
    )

    parser.add_argument(
        "-v",
        dest="verbose",
        action="store_true",
        help="Verbose mode - log builder and launcher details",
    )

    return parser


def parse_args(argv: Sequence[str] | None = None) -> Args:
    """Parse command-line arguments.

    Args:
        argv: Command-line arguments. Uses sys.argv[1:] if not specified.

    Returns:
        Parsed arguments.
    """
    namespace = create_parser().parse_args(argv)
    return Args(
        recipients=namespace.recipients,
        cc=namespace.cc,
        bcc=namespace.bcc,
        subject=namespace.subject,
        body=namespace.body,
        body_file=namespace.body_file,
        attachment=namespace.attachment,
        open_command=namespace.open_command,
        print_only=namespace.print_only,
        info=namespace.info,
        verbose=namespace.verbose,
    )


def build_from_args(args: Args, context: LaunchContext) -> EmailIntentBuilder:
    """Feed parsed arguments into a fresh builder bound to ``context``."""
    builder = EmailIntentBuilder.from_context(context)
    if args.recipients:
        builder.add_to(args.recipients)
    if args.cc:
        builder.add_cc(args.cc)
    if args.bcc:
        builder.add_bcc(args.bcc)
    if args.subject is not None:
        builder.set_subject(args.subject)
    body = _read_body(args)
    if body is not None:
        builder.set_body(body)
    if args.attachment is not None:
        builder.attach(args.attachment)
    return builder


def main(argv: Sequence[str] | None = None, context: LaunchContext | None = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments. Uses sys.argv[1:] if not specified.
        context: Launch context; detected from the terminal when omitted.

    Returns:
        Exit code (0 for success, 1 when no mail client could be launched,
        2 for invalid input).
    """
    args = parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    if args.info:
        __init__conf__.print_info()
        return 0

    context = context or LaunchContext.detect()
    if args.open_command is not None:
        # override applies to this call only, the global conf stays untouched
        config = ConfMailto.model_validate({**conf.model_dump(), "open_command": args.open_command})
        context = replace(context, launcher=SystemLauncher(config=config))

    try:
        builder = build_from_args(args, context)
    except InvalidArgumentError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.print_only:
        print(builder.build_uri())
        return 0

    if not builder.start():
        print("Error: no application can handle mailto: requests", file=sys.stderr)
        return 1
    logger.debug("mail client launched")
    return 0


def _read_body(args: Args) -> str | None:
    if args.body is not None:
        return args.body
    if args.body_file is None:
        return None
    if str(args.body_file) == "-":
        return sys.stdin.read()
    try:
        return args.body_file.read_text(encoding="utf-8")
    except OSError as e:
        raise InvalidArgumentError(f'can not read body file "{args.body_file}": {e}') from e
