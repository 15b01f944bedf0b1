"""
Remove command implementation.

Deletes one installed version.
"""

from binarykit.cli.utils import create_manager, print_error, safe_print


def run(args) -> int:
    manager = create_manager(args)

    if not manager.store.version_dir(args.tag).is_dir():
        print_error(f"Version not installed: {args.tag}")
        return 1

    result = manager.remove_version(args.tag)
    if not result.complete:
        print_error(
            f"Could not fully remove {args.tag}",
            f"{len(result.skipped)} locked entries left behind",
        )
        for path in result.skipped:
            print(f"  {path}")
        return 1

    safe_print(f"✓ Removed {args.tag}")
    return 0
