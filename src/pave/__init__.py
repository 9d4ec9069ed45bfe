"""PAVED documentation linter."""

from pave.exceptions import ConfigError, DocumentReadError, PaveError, VcsError

__all__ = ["__version__", "ConfigError", "DocumentReadError", "PaveError", "VcsError"]

__version__ = "0.1.0"
