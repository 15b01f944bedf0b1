"""
Release catalog access.

Models for releases and their assets, and the client that queries them.
"""

from binarykit.release.models import Asset, Release
from binarykit.release.source import ReleaseSource, tag_candidates

__all__ = ["Asset", "Release", "ReleaseSource", "tag_candidates"]
