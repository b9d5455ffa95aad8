"""Incremental media library scanner and catalog updater."""

__version__ = "0.1.0"
