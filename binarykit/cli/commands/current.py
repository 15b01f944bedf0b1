"""
Current command implementation.

Prints the version of the binary currently in use.
"""

from binarykit.cli.utils import create_manager, print_error


def run(args) -> int:
    manager = create_manager(args)
    current = manager.get_current_version()
    if current is None:
        print_error(f"Unable to determine the {manager.settings.executable} version")
        return 1

    print(current)
    return 0
