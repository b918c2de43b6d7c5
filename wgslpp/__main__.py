# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Command line front end: preprocess shader files and report diagnostics.
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from wgslpp import __version__
from wgslpp.config import DirectiveAliases, load_aliases
from wgslpp.finder import find
from wgslpp.preprocessor import PreprocessResult

log = logging.getLogger("wgslpp")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wgslpp",
        description="Expand macros and resolve conditional directives "
        + "in WGSL shader sources.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "paths",
        metavar="PATH",
        nargs="+",
        help="shader file, or directory to search for *.wgsl files",
    )
    parser.add_argument(
        "-o",
        "--output",
        metavar="OUTPUT",
        help="output file, or output directory when there are several "
        + "inputs (default: standard output)",
    )
    parser.add_argument(
        "-D",
        dest="defines",
        metavar="NAME[=VALUE]",
        action="append",
        default=[],
        help="predefine a macro (repeatable)",
    )
    aliases = parser.add_mutually_exclusive_group()
    aliases.add_argument(
        "--prefix",
        metavar="PREFIX",
        help="prefix introducing every directive, e.g. '#' "
        + "(default: '///#')",
    )
    aliases.add_argument(
        "--aliases",
        metavar="FILE",
        help="JSON file mapping directive names to prefixes",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="increase verbosity",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="decrease verbosity",
    )
    parser.add_argument(
        "--progress",
        action="store_true",
        help="show progress bars",
    )
    return parser


def _log_level(verbose: int, quiet: int) -> int:
    level = logging.WARNING - 10 * (verbose - quiet)
    return min(max(level, logging.DEBUG), logging.CRITICAL)


def _output_path(
    output: Path,
    filename: Path,
    inputs: list[Path],
) -> Path:
    """
    Return where the result for filename is written when several results
    share the output directory. Files found below an input directory keep
    their relative location.
    """
    for path in inputs:
        if path.is_dir() and path in filename.parents:
            return output / filename.relative_to(path)
    return output / filename.name


def _write(
    results: dict[Path, PreprocessResult],
    output: str | None,
    inputs: list[Path],
) -> None:
    if output is None:
        for result in results.values():
            sys.stdout.write(result.code + "\n")
        return

    out = Path(output)
    if len(results) == 1 and not out.is_dir():
        (result,) = results.values()
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(result.code + "\n", encoding="utf-8")
        return

    for filename, result in results.items():
        destination = _output_path(out, filename, inputs)
        log.info(f"Writing {destination}")
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(result.code + "\n", encoding="utf-8")


def main(argv: list[str] | None = None) -> int:
    """
    Run the command line front end.

    Returns
    -------
    int
        1 if any diagnostic was produced and 0 otherwise.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        format="%(levelname)s: %(message)s",
        level=_log_level(args.verbose, args.quiet),
    )

    aliases: DirectiveAliases | None = None
    try:
        if args.prefix is not None:
            aliases = DirectiveAliases.from_prefix(args.prefix)
        elif args.aliases is not None:
            aliases = load_aliases(args.aliases)
    except (OSError, json.JSONDecodeError, TypeError, ValueError) as e:
        parser.error(f"invalid directive aliases: {e}")

    inputs = [Path(p) for p in args.paths]
    try:
        results = find(
            inputs,
            aliases=aliases,
            defines=args.defines,
            show_progress=args.progress,
        )
    except FileNotFoundError as e:
        parser.error(str(e))
    except ValueError as e:
        parser.error(f"invalid macro definition: {e}")

    count = 0
    for filename, result in results.items():
        for error in result.errors:
            if error.position is None:
                log.error(f"{os.fspath(filename)}: {error!s}")
            else:
                log.error(f"{os.fspath(filename)}:{error!s}")
            count += 1

    _write(results, args.output, inputs)

    if count:
        log.warning(f"{count} diagnostic(s) in {len(results)} file(s)")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
