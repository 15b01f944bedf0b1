"""
Update command implementation.

Checks for a newer release and installs it.
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
    Run the update command.

    Args:
        args: Parsed command-line arguments with:
            - check_only: Report availability without installing

    Returns:
        Exit code (0 when up to date or updated, 1 on failure)
    """
    manager = create_manager(args)

    if manager.get_current_version() is None:
        print("Nothing installed yet; use 'binkit install'")
        return 1

    if args.check_only:
        info = manager.find_update(force=True)
        if info is None:
            safe_print("✓ Up to date")
        else:
            print(f"Update available: {info.latest} (current: {info.current})")
        return 0

    progress = ProgressPrinter()
    try:
        binary = manager.update(progress_callback=progress)
    finally:
        progress.finish()

    if binary is not None:
        safe_print(f"✓ Updated to {manager.last_result.tag}: {binary}")
        return 0

    if manager.last_result is not None and not manager.last_result.success:
        print_install_failure(manager.last_result)
        return 1

    safe_print("✓ Up to date")
    return 0
