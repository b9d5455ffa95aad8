"""Exception hierarchy for the scanner and updater."""

from pathlib import Path
from typing import Optional


class MedialibError(Exception):
    """Base class for all medialib errors."""


class ParseError(MedialibError):
    """The metadata parser could not read a file."""

    def __init__(self, path: Path, reason: Optional[str] = None):
        self.path = path
        self.reason = reason
        message = f"Failed to parse {path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class ValidityError(MedialibError):
    """A file parsed but lacks a usable stream or duration."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Not a supported media file {path}: {reason}")


class CatalogError(MedialibError):
    """The catalog could not be read or written for a whole run."""
