# src/mavendist/cli.py

import argparse
import dataclasses
import importlib.metadata
import sys
from pathlib import Path
from typing import List, Optional

from mavendist import log_utils
from mavendist.config import ResolverSettings, get_log_dir, load_config
from mavendist.download import DistributionResolver
from mavendist.exceptions import MavenDistError

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NOT_RESOLVED = 2


def get_version() -> str:
    try:
        return importlib.metadata.version("mavendist")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mavendist",
        description="mavendist - Maven distribution downloader and resolver",
    )
    parser.add_argument(
        "--log-level",
        help="Console log level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--log-file",
        action="store_true",
        help="Also write a rotating log file to the user log directory",
    )
    parser.add_argument(
        "--config",
        help="Path to a mavendist.yaml configuration file",
    )
    subparsers = parser.add_subparsers(dest="command")

    resolve_parser = subparsers.add_parser(
        "resolve", help="Download, cache and extract a Maven distribution"
    )
    source_group = resolve_parser.add_mutually_exclusive_group()
    source_group.add_argument(
        "--version",
        dest="maven_version",
        help="Maven 3 version to resolve (defaults to the configured default version)",
    )
    source_group.add_argument(
        "--url",
        help="Explicit distribution archive URL",
    )
    resolve_parser.add_argument(
        "--no-cache",
        dest="use_cache",
        action="store_false",
        help="Stage the archive in the build output instead of the user cache (only with --url)",
    )
    resolve_parser.add_argument(
        "--build-output",
        help="Build output directory holding extracted distributions (default: target)",
    )
    resolve_parser.add_argument(
        "--cache-dir",
        help="Persistent cache directory for downloaded archives",
    )

    subparsers.add_parser("version", help="Display mavendist version")
    return parser


def _load_settings(args: argparse.Namespace) -> ResolverSettings:
    settings = ResolverSettings.from_config(load_config(args.config))
    overrides = {}
    if getattr(args, "build_output", None):
        overrides["build_output_dir"] = Path(args.build_output)
    if getattr(args, "cache_dir", None):
        overrides["cache_dir"] = Path(args.cache_dir).expanduser()
    if overrides:
        settings = dataclasses.replace(settings, **overrides)
    return settings


def run_resolve(args: argparse.Namespace) -> int:
    """
    Resolve the requested distribution and print the selected installation.

    Returns:
        int: EXIT_OK when an installation was selected, EXIT_NOT_RESOLVED when the
            archive could not be hashed, EXIT_ERROR on any mavendist error.
    """
    try:
        resolver = DistributionResolver(settings=_load_settings(args))
        if args.url:
            resolver.use_distribution(args.url, args.use_cache)
        elif args.maven_version:
            resolver.use_maven3_version(args.maven_version)
        else:
            resolver.use_default_distribution()
    except MavenDistError as e:
        log_utils.logger.error(f"Resolution failed: {e}")
        log_utils.logger.debug("Resolution failure details", exc_info=True)
        return EXIT_ERROR

    result = resolver.last_result
    if result is None or not result.resolved or resolver.installation is None:
        log_utils.logger.warning("No Maven installation was selected")
        return EXIT_NOT_RESOLVED

    installation = resolver.installation
    print(f"MAVEN_HOME={installation.home}")
    print(f"MAVEN_BIN={installation.bin_dir}")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """
    Entry point for the mavendist command-line interface.

    Parses arguments, applies logging options and dispatches the `resolve` and
    `version` subcommands. Prints help when no subcommand is given.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "resolve" and not args.use_cache and not args.url:
        # Version-based resolution always uses the persistent cache
        parser.error("--no-cache can only be used together with --url")

    if args.log_level:
        log_utils.set_log_level(args.log_level)
    if args.log_file:
        log_utils.add_file_logging(Path(get_log_dir()), args.log_level or "INFO")

    if args.command == "resolve":
        return run_resolve(args)
    if args.command == "version":
        print(f"mavendist v{get_version()}")
        return EXIT_OK

    parser.print_help()
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
