"""
binarykit CLI argument parser.

This module implements the command-line interface for binarykit using argparse.
"""

import argparse
import importlib
import logging
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import List, Optional

from binarykit.core.exceptions import BinaryKitError

try:
    __version__ = version("binarykit")
except PackageNotFoundError:
    __version__ = "0.1.0"

logger = logging.getLogger(__name__)

COMMANDS = ("install", "update", "which", "current", "versions", "prune", "remove")


class CLI:
    """binarykit command-line interface."""

    def __init__(self):
        """Initialize CLI with argument parser."""
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """
        Create argument parser with all subcommands.

        Returns:
            Configured ArgumentParser instance
        """
        parser = argparse.ArgumentParser(
            prog="binkit",
            description="binarykit - install and update a released companion binary",
            epilog='Use "binkit COMMAND --help" for command-specific help',
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        # Global options
        parser.add_argument(
            "--version", action="version", version=f"binarykit {__version__}"
        )
        parser.add_argument(
            "--verbose", "-v", action="store_true", help="Enable verbose output"
        )
        parser.add_argument(
            "--quiet",
            "-q",
            action="store_true",
            help="Enable minimal output (errors only)",
        )
        parser.add_argument(
            "--config",
            type=Path,
            metavar="PATH",
            help="Path to configuration file (default: ./binarykit.yaml)",
        )
        parser.add_argument(
            "--storage-dir",
            type=Path,
            metavar="PATH",
            help="Storage root (default: $BINARYKIT_STORAGE_DIR or ~/.binarykit)",
        )

        subparsers = parser.add_subparsers(
            dest="command", help="Available commands", metavar="COMMAND"
        )

        self._add_install_command(subparsers)
        self._add_update_command(subparsers)
        self._add_which_command(subparsers)
        self._add_current_command(subparsers)
        self._add_versions_command(subparsers)
        self._add_prune_command(subparsers)
        self._add_remove_command(subparsers)

        return parser

    def _add_install_command(self, subparsers):
        """Add 'install' subcommand."""
        parser = subparsers.add_parser(
            "install",
            help="Install a release",
            description="Download, verify and install a release (latest by default)",
        )
        parser.add_argument(
            "--version",
            dest="release",
            metavar="TAG",
            help="Release tag to install (e.g., v1.2.3); default: configured or latest",
        )
        parser.add_argument(
            "--force",
            action="store_true",
            help="Reinstall even if the version is already installed",
        )
        parser.add_argument(
            "--output",
            type=Path,
            metavar="PATH",
            help="Install as a single file at PATH instead of the version store",
        )

    def _add_update_command(self, subparsers):
        """Add 'update' subcommand."""
        parser = subparsers.add_parser(
            "update",
            help="Update to the latest release",
            description="Check for a newer release and install it",
        )
        parser.add_argument(
            "--check-only",
            action="store_true",
            help="Only report whether an update is available",
        )

    def _add_which_command(self, subparsers):
        """Add 'which' subcommand."""
        subparsers.add_parser(
            "which",
            help="Show the active binary path",
            description="Print the binary that would be used (override or newest installed)",
        )

    def _add_current_command(self, subparsers):
        """Add 'current' subcommand."""
        subparsers.add_parser(
            "current",
            help="Show the active version",
            description="Print the version of the active binary",
        )

    def _add_versions_command(self, subparsers):
        """Add 'versions' subcommand."""
        parser = subparsers.add_parser(
            "versions",
            help="List versions",
            description="List installed versions, or published releases with --remote",
        )
        parser.add_argument(
            "--remote",
            action="store_true",
            help="List releases published upstream instead of installed versions",
        )

    def _add_prune_command(self, subparsers):
        """Add 'prune' subcommand."""
        parser = subparsers.add_parser(
            "prune",
            help="Remove old versions",
            description="Delete all but the most recently installed versions",
        )
        parser.add_argument(
            "--keep",
            type=int,
            metavar="N",
            help="Number of versions to keep (default: configured retention)",
        )

    def _add_remove_command(self, subparsers):
        """Add 'remove' subcommand."""
        parser = subparsers.add_parser(
            "remove",
            help="Remove an installed version",
            description="Delete one installed version directory",
        )
        parser.add_argument("tag", metavar="TAG", help="Installed version tag")

    def parse_args(self, args: Optional[List[str]] = None):
        """
        Parse command-line arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Parsed arguments namespace
        """
        return self.parser.parse_args(args)

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run CLI with given arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        parsed_args = self.parse_args(args)

        self._configure_logging(parsed_args)

        if not parsed_args.command:
            self.parser.print_help()
            return 1

        try:
            return self._dispatch_command(parsed_args)
        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return 130  # Standard exit code for SIGINT
        except BinaryKitError as e:
            logger.error(f"Error: {e}")
            if parsed_args.verbose:
                import traceback

                traceback.print_exc()
            return 1

    def _configure_logging(self, args):
        """
        Configure logging based on verbose/quiet flags.

        Args:
            args: Parsed arguments with verbose/quiet flags
        """
        if args.verbose:
            level = logging.DEBUG
            format_str = "%(levelname)s [%(name)s] %(message)s"
        elif args.quiet:
            level = logging.ERROR
            format_str = "%(levelname)s: %(message)s"
        else:
            level = logging.INFO
            format_str = "%(message)s"

        logging.basicConfig(
            level=level,
            format=format_str,
            force=True,  # Reconfigure if already configured
        )

    def _dispatch_command(self, args) -> int:
        """
        Dispatch to appropriate command handler.

        Args:
            args: Parsed arguments with command field

        Returns:
            Exit code from command handler
        """
        if args.command not in COMMANDS:
            logger.error(f"Unknown command: {args.command}")
            return 1

        module_name = f"binarykit.cli.commands.{args.command}"
        module = importlib.import_module(module_name)
        return module.run(args)


def main():
    """Main entry point for CLI."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
