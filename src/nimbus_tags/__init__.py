"""
Nimbus Tags - recover the note metadata that Nimbus Note does not export.
This package walks the list of notes in the Nimbus Note web UI, scrapes the
folder path, tags and creation date of every note, and stores them in a small
SQLite database so they can be re-attached to the files of a regular export.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("nimbus-tags")
except PackageNotFoundError:
    __version__ = "1.2.2"
