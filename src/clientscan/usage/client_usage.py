"""
client_usage.py

Scans a Python code base for calls to a typed client library (lightkube by
default) and reports which resource types each tracked method is called with,
e.g. to derive the RBAC rules a controller needs.

This tool is read-only and does not import or execute any of the target code.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

from clientscan.shared.console import ConsoleManager
from clientscan.source.loader import WorkspaceLoadError

from .config import ConfigurationManager, parse_method_flag
from .core import UsageService
from .report import LogReporter, TextReporter


class CliInterface:
    """
    Handles command-line arguments and application bootstrapping.
    """

    def __init__(self) -> None:
        self._parser = self._build_parser()

    def run(self, argv: list[str] | None = None) -> None:
        args = self._parser.parse_args(argv)

        log_level = args.log_level or logging.INFO
        logging.basicConfig(
            level=log_level,
            format="%(message)s",  # Handled by ConsoleManager
            handlers=[logging.StreamHandler(sys.stderr)],  # Log to stderr
        )
        logger = ConsoleManager(level=log_level, no_color=args.no_color)

        try:
            config = self._build_config(args)

            service = UsageService(
                app_config=config,
                root_path=Path(args.root),
                logger=logger,
            )

            result = service.run_analysis()

            if args.output_path or args.stdout:
                service.write_yaml(service.build_report(result), args.output_path, args.stdout)
            elif args.format == "log":
                LogReporter(logger, show_identity=config.get("show_identity", False)).render(result)
            else:
                TextReporter(
                    show_identity=config.get("show_identity", False),
                    list_calls=config.get("list_calls", False),
                ).render(result)

            if args.print_summary:
                logger.print_summary(service.build_report(result)["stats"])

            if result.failures:
                logger.warning(f"{len(result.failures)} file(s) could not be analyzed.")
            sys.exit(2 if args.strict and result.failures else 0)

        except (WorkspaceLoadError, FileNotFoundError, ValueError) as e:
            logger.critical(f"Configuration or Usage Error: {e}")
            sys.exit(1)

    def _build_config(self, args: argparse.Namespace) -> dict[str, Any]:
        methods = None
        if args.methods:
            methods = dict(parse_method_flag(flag) for flag in args.methods)

        overrides = {
            "target_namespace": args.namespace,
            "methods": methods,
            "exclude": args.excludes,
            "include_tests": args.include_tests,
            "show_identity": args.show_identity,
            "list_calls": args.list_calls,
            "concurrency": args.concurrency,
        }

        mgr = ConfigurationManager()
        return mgr.load_config(args.config, overrides)

    def _build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="clientscan",
            description="Typed client usage extractor.",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Example:
  clientscan \\
    --root ./my-operator \\
    --exclude "migrations/" \\
    --show-identity \\
    --print-summary
""",
        )

        # Core
        parser.add_argument("--root", required=True, help="Workspace root directory.")
        parser.add_argument("--config", help="Path to JSON/JSONC config.")
        parser.add_argument(
            "-e", "--exclude", action="append", dest="excludes",
            help="Gitignore-style pattern to skip (relative to --root). Repeatable.",
        )
        parser.add_argument(
            "--include-tests", action="store_true", default=None,
            help="Also analyze test modules and test directories.",
        )

        # Matching
        parser.add_argument("--namespace", help="Module the client methods must belong to.")
        parser.add_argument(
            "--method", action="append", dest="methods", metavar="NAME=INDEX",
            help="Track an extra method whose resource is argument INDEX (1-based). Repeatable.",
        )

        # Output
        parser.add_argument("--format", choices=["text", "log"], default="text")
        out_g = parser.add_mutually_exclusive_group()
        out_g.add_argument("-o", "--output", dest="output_path", help="Write a YAML report.")
        out_g.add_argument("--stdout", action="store_true", help="Write the YAML report to stdout.")
        parser.add_argument(
            "--show-identity", action="store_true", default=None,
            help="Include the fully-qualified resource type in the output.",
        )
        parser.add_argument(
            "--list-calls", action="store_true", default=None,
            help="List every matched call site with its position.",
        )
        parser.add_argument("--print-summary", action="store_true")
        parser.add_argument(
            "--strict", action="store_true",
            help="Exit with status 2 if any file could not be analyzed.",
        )
        parser.add_argument("-j", "--concurrency", type=int)

        # Log
        log_g = parser.add_mutually_exclusive_group()
        log_g.add_argument(
            "-v",
            "--verbose",
            action="store_const",
            dest="log_level",
            const=logging.DEBUG,
        )
        log_g.add_argument(
            "-q", "--quiet", action="store_const", dest="log_level", const=logging.ERROR
        )
        parser.add_argument("--no-color", action="store_true")

        return parser


def main() -> None:
    CliInterface().run()


if __name__ == "__main__":
    main()
