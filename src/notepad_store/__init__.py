"""
notepad-store - the storage engine behind a single-user notepad.

Files and folders live in one embedded SQLite database as a parent-pointer
tree. This package keeps that tree consistent (soft delete with cascade,
sibling name uniqueness, offline integrity repair) and protects the store
with rotating point-in-time backups.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("notepad-store")
except PackageNotFoundError:
    __version__ = "0.3.0"
