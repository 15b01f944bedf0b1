"""
Which command implementation.

Prints the path of the binary currently in use.
"""

from binarykit.cli.utils import create_manager, print_error


def run(args) -> int:
    manager = create_manager(args)
    binary = manager.get_active_binary_path()
    if binary is None:
        print_error(f"No {manager.settings.executable} binary installed")
        return 1

    print(binary)
    return 0
