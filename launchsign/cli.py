"""Command-line front end.

Usage:
    launchsign [options] <signing command...>

Examples:
    launchsign --verbose osslsigncode sign -certs c.spc -key k.pvk -in app.exe -out app-signed.exe
    launchsign --maxpasses 5 signtool sign /f cert.pfx /tr http://ts.example app.exe
"""

from __future__ import annotations

import argparse
import logging
import sys
import traceback
from pathlib import Path
from typing import Optional, Sequence

from launchsign import __version__
from launchsign.arguments import infer_files
from launchsign.config import DEFAULT_MAX_PASSES, ConvergenceConfig, SignConfig
from launchsign.controller import ConvergenceController
from launchsign.core.config import ProcessConfig
from launchsign.core.errors import SignFailure, UsageError
from launchsign.signer import CommandSigner


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="launchsign",
        description=(
            "Sign an executable that wraps a JAR, keeping the embedded ZIP "
            "archive valid even when the signature size varies between runs."
        ),
        epilog=(
            "The signing command is given verbatim after the options. "
            "Only one file can be signed on each invocation."
        ),
    )
    parser.add_argument(
        "--backup", action="store_true",
        help="retain a backup of the original file before signing",
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="show diagnostics about intermediary steps of the process",
    )
    parser.add_argument(
        "--onthespot", "--inplace", dest="in_place", action="store_true",
        help="re-sign the file itself instead of restoring a copy between passes",
    )
    parser.add_argument(
        "--lenient", action="store_true",
        help="accept a ZIP trailer whose comment length is inconsistent",
    )
    parser.add_argument(
        "--maxpasses", type=int, default=DEFAULT_MAX_PASSES, metavar="N",
        help=f"give up after N signing passes (default: {DEFAULT_MAX_PASSES}, minimum 2)",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "command", nargs=argparse.REMAINDER,
        help="the command line for your signing tool",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> SignConfig:
    return SignConfig(
        convergence=ConvergenceConfig(
            max_passes=args.maxpasses,
            in_place=args.in_place,
            lenient=args.lenient,
            backup=args.backup,
        ),
        process=ProcessConfig(verbose=args.verbose),
    )


def run(command: Sequence[str], config: SignConfig, base_dir: Optional[Path] = None) -> None:
    """Sign the file named in command.

    Raises:
        SignFailure: On any failure.
    """
    base = base_dir if base_dir is not None else Path.cwd()
    files = infer_files(command, base)
    signer = CommandSigner(
        command,
        input_index=None if files.same_file else files.input_index,
        cwd=base,
        config=config.process,
    )
    ConvergenceController(signer, config).execute(files.output_path, files.input_path)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )
    config = config_from_args(args)

    try:
        if not args.command:
            raise UsageError(parser.format_help())
        run(args.command, config)
    except SignFailure as f:
        print(f, file=sys.stderr)
        cause = f.cause
        if config.verbose and cause is not None:
            traceback.print_exception(type(cause), cause, cause.__traceback__)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
