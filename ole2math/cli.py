from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Sequence

import ole2math
from ole2math.extractors.serialization import serialize_report
from ole2math.settings import ConversionSettings


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ole2math",
        description=(
            "Convert the legacy equations embedded in a DOCX file and emit the "
            "document as HTML with the equations inline (or JSON with --json)."
        ),
    )
    parser.add_argument(
        "path",
        type=Path,
        help="Path to the DOCX file to convert.",
    )
    output = parser.add_mutually_exclusive_group()
    output.add_argument(
        "--json",
        action="store_true",
        help="Emit the full conversion report as JSON.",
    )
    output.add_argument(
        "--fallback",
        action="store_true",
        help="Emit the plain fallback HTML rendering instead of the inline HTML.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Seconds allowed per equation conversion.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Number of equations converted in parallel.",
    )
    parser.add_argument(
        "--converter",
        help="Converter command; the equation file path is appended as last argument.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log progress to stderr.",
    )
    return parser


def _settings_from_args(args: argparse.Namespace) -> ConversionSettings:
    settings = ConversionSettings.from_env()
    overrides: dict = {}
    if args.timeout is not None:
        if args.timeout <= 0:
            raise ValueError("--timeout must be positive")
        overrides["converter_timeout"] = args.timeout
    if args.workers is not None:
        if args.workers <= 0:
            raise ValueError("--workers must be positive")
        overrides["max_workers"] = args.workers
    if args.converter:
        command = tuple(args.converter.split())
        if not command:
            raise ValueError("--converter must not be empty")
        overrides["converter_command"] = command
    return dataclasses.replace(settings, **overrides)


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    try:
        args, unknown = parser.parse_known_args(argv)
    except SystemExit as exc:
        code = exc.code if isinstance(exc.code, int) else 1
        return code

    if unknown:
        unknown_str = " ".join(unknown)
        print(
            f"ole2math: warning: unsupported arguments: {unknown_str}",
            file=sys.stderr,
        )
        return 1

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )

    try:
        settings = _settings_from_args(args)
        report = ole2math.convert_file(args.path, settings=settings)
        if args.json:
            json.dump(serialize_report(report), sys.stdout)
            sys.stdout.write("\n")
        elif args.fallback:
            sys.stdout.write(report.html_fallback)
            sys.stdout.write("\n")
        else:
            sys.stdout.write(report.html_inline)
            sys.stdout.write("\n")
        return 0
    except Exception as exc:
        print(f"ole2math: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
