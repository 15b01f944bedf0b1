"""
Versions command implementation.

Lists installed versions, or published releases with --remote.
"""

import logging

from binarykit.cli.utils import create_manager

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the versions command.

    Args:
        args: Parsed command-line arguments with:
            - remote: List upstream releases instead of installed versions

    Returns:
        Exit code (0 for success)
    """
    manager = create_manager(args)

    if args.remote:
        return _list_remote(manager)
    return _list_installed(manager)


def _list_installed(manager) -> int:
    versions = manager.installed_versions()
    if not versions:
        print("No versions installed")
        return 0

    active = manager.get_active_binary_path()
    for installed in versions:
        marker = "*" if installed.binary_path == active else " "
        stamp = installed.installed_at.strftime("%Y-%m-%d %H:%M")
        print(f"{marker} {installed.tag:<20} {stamp}")

    if manager.store.override_active():
        print(f"  (override in use: {manager.store.override_path})")
    return 0


def _list_remote(manager) -> int:
    releases = manager.list_releases()
    if not releases:
        print("No releases published")
        return 0

    installed = {v.tag for v in manager.installed_versions()}
    for release in releases:
        published = (
            release.published_at.strftime("%Y-%m-%d") if release.published_at else "-"
        )
        flags = []
        if release.tag in installed:
            flags.append("installed")
        if release.prerelease:
            flags.append("pre-release")
        suffix = f" ({', '.join(flags)})" if flags else ""
        print(f"  {release.tag:<20} {published}{suffix}")
    return 0
