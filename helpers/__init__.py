"""Helper utilities shared by sqlcache and its tests.

This package provides the DebugUtil used to route debug output.
"""

from .debug_util import DebugUtil  # noqa: F401
