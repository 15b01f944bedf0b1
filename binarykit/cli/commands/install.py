"""
Install command implementation.

Installs a release into the version store, or as a single file with --output.
"""

import logging

from binarykit.cli.utils import (
    ProgressPrinter,
    create_manager,
    print_install_failure,
    safe_print,
)

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the install command.

    Args:
        args: Parsed command-line arguments with:
            - release: Tag to install (None for the configured pin or latest)
            - force: Reinstall even if present
            - output: Optional fixed destination path

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    manager = create_manager(args)
    tag = args.release or manager.settings.pinned_version
    progress = ProgressPrinter()

    try:
        if args.output:
            binary = manager.install_to_path(
                args.output, version=tag, progress_callback=progress
            )
        else:
            binary = manager.install(
                version=tag, force_reinstall=args.force, progress_callback=progress
            )
    finally:
        progress.finish()

    result = manager.last_result
    if binary is None:
        print_install_failure(result)
        return 1

    if result.was_cached:
        safe_print(f"✓ {result.tag} is already installed: {binary}")
    else:
        safe_print(f"✓ Installed {result.tag}: {binary}")

    if result.backup_path:
        print(f"  Previous binary kept at {result.backup_path}")
    if result.pruned:
        print(f"  Removed old versions: {', '.join(result.pruned)}")
    return 0
