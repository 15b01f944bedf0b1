"""
Prune command implementation.

Deletes old versions beyond the retention limit.
"""

import logging

from binarykit.cli.utils import create_manager, print_error, safe_print

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the prune command.

    Args:
        args: Parsed command-line arguments with:
            - keep: Versions to keep (None for the configured retention)

    Returns:
        Exit code (0 for success, 1 for an invalid --keep)
    """
    if args.keep is not None and args.keep < 0:
        print_error(f"--keep must be >= 0, got {args.keep}")
        return 1

    manager = create_manager(args)
    result = manager.prune(keep=args.keep)

    if result.removed:
        safe_print(f"✓ Removed {len(result.removed)} version(s): {', '.join(result.removed)}")
    else:
        safe_print("✓ Nothing to prune")

    for path in result.skipped:
        print(f"  Skipped locked entry: {path}")
    return 0
