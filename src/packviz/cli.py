# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Command-line entry point.

    packviz analyze packaging.yml --package Core --package UI
    packviz inheritance src/ shapes.base.Shape
    packviz types src/shapes/base.py

Documents are written as JSON to stdout or --output. Logs go to stderr.

Exit codes: 0 success, 1 no result (cancelled or module not loadable),
2 configuration error.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable, List, Optional

from packviz import __version__
from packviz.analyzers import AllTypesInspector, InheritanceGraphInspector, PackageAnalyzer
from packviz.background import BackgroundAnalysis, Work
from packviz.config import Config, ConfigurationError
from packviz.logging_setup import setup_logging
from packviz.packaging import load_system_packaging
from packviz.reflection import ModuleLoadError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_NO_RESULT = 1
EXIT_CONFIG_ERROR = 2

# Seconds between checks for Ctrl-C while a background run is going
_POLL_INTERVAL = 0.2


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        prog="packviz",
        description="Type dependency graphs for Python code bases",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Settings file. Default: ./.packviz.yml",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level. Default: WARNING",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Directory for JSON log files. Default: no log file",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="Dependencies within or between packages")
    analyze.add_argument("packaging", type=Path, help="YAML packaging file")
    analyze.add_argument(
        "-p",
        "--package",
        dest="packages",
        action="append",
        default=[],
        help="Package to analyze (repeatable). Default: all packages",
    )
    analyze.add_argument(
        "--used-types-only",
        action="store_true",
        default=None,
        help="Only keep types touched by at least one edge",
    )
    _add_platform_argument(analyze)
    _add_output_argument(analyze)

    inheritance = subparsers.add_parser("inheritance", help="Inheritance graph around a type")
    inheritance.add_argument("directory", type=Path, help="Directory to scan for modules")
    inheritance.add_argument("seed", help="Fully-qualified name of the type to focus on")
    _add_platform_argument(inheritance)
    _add_output_argument(inheritance)

    types = subparsers.add_parser("types", help="List the types declared in a module")
    types.add_argument("module", type=Path, help="Python module file")
    types.add_argument(
        "--module-root",
        type=Path,
        default=None,
        help="Root for dotted names. Default: the module's directory",
    )
    _add_output_argument(types)

    return parser.parse_args(argv)


def _add_platform_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--include-platform-types",
        dest="ignore_platform_types",
        action="store_false",
        default=None,
        help="Keep builtin and standard library types as edge targets",
    )


def _add_output_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Write the JSON export here instead of stdout",
    )


def _write_output(data: Any, output: Optional[Path]) -> None:
    text = json.dumps(data, indent=2)
    if output is None:
        sys.stdout.write(text + "\n")
    else:
        output.write_text(text + "\n", encoding="utf-8")
        logger.info(f"Wrote {output}")


def _run_cancellable(work: Work, on_progress: Optional[Callable[[float], None]] = None) -> Any:
    """Run work in the background; Ctrl-C requests cancellation."""
    run: BackgroundAnalysis = BackgroundAnalysis(work, on_progress=on_progress).start()
    while True:
        try:
            return run.wait(timeout=_POLL_INTERVAL)
        except TimeoutError:
            continue
        except KeyboardInterrupt:
            logger.warning("Cancellation requested, waiting for workers to stop ...")
            run.cancel()
            return run.wait()


def _command_analyze(args: argparse.Namespace, config: Config) -> int:
    packaging = load_system_packaging(args.packaging)

    analyzer = PackageAnalyzer.from_config(config, packages_to_analyze=args.packages)
    if args.used_types_only is not None:
        analyzer.used_types_only = args.used_types_only
    if args.ignore_platform_types is not None:
        analyzer.ignore_platform_types = args.ignore_platform_types

    # Precondition errors surface here, before the background run
    if not packaging.module_root.is_dir():
        raise ConfigurationError(f"Module root is not a directory: {packaging.module_root}")

    document = _run_cancellable(lambda token, _progress: analyzer.execute(packaging, token))
    if document is None:
        logger.warning("Analysis cancelled, no document written")
        return EXIT_NO_RESULT

    for skipped in analyzer.skipped_modules:
        print(f"skipped: {skipped}", file=sys.stderr)

    _write_output(document.to_dict(), args.output)
    return EXIT_OK


def _command_inheritance(args: argparse.Namespace, config: Config) -> int:
    ignore_platform_types = config.ignore_platform_types
    if args.ignore_platform_types is not None:
        ignore_platform_types = args.ignore_platform_types

    if not args.seed:
        logger.error("A seed type is required")
        print("error: a seed type is required", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    if not args.directory.exists():
        raise ConfigurationError(f"Module directory does not exist: {args.directory}")

    inspector = InheritanceGraphInspector(args.directory, args.seed, ignore_platform_types)
    document = _run_cancellable(
        lambda token, progress: inspector.execute(token, progress),
        on_progress=lambda value: logger.debug(f"Progress {value:.0%}"),
    )
    if document is None:
        logger.warning("Analysis cancelled, no document written")
        return EXIT_NO_RESULT

    for failed in document.failed_items:
        print(f"failed: {failed.item}: {failed.failure_reason}", file=sys.stderr)

    data = document.to_dict()
    data["edge_types"] = [
        {"source": source, "target": target, "kind": kind.value}
        for (source, target), kind in document.edge_types.items()
    ]
    _write_output(data, args.output)
    return EXIT_OK


def _command_types(args: argparse.Namespace, config: Config) -> int:
    inspector = AllTypesInspector(args.module, module_root=args.module_root)
    try:
        descriptors = inspector.execute()
    except ModuleLoadError as e:
        logger.error(str(e))
        return EXIT_NO_RESULT

    _write_output([d.to_dict() for d in descriptors], args.output)
    return EXIT_OK


COMMANDS = {
    "analyze": _command_analyze,
    "inheritance": _command_inheritance,
    "types": _command_types,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the packviz command."""
    args = parse_args(argv)

    setup_logging(log_dir=args.log_dir, log_level=getattr(logging, args.log_level))

    try:
        config = Config(args.config)
        return COMMANDS[args.command](args, config)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        print(f"error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR


if __name__ == "__main__":
    sys.exit(main())
