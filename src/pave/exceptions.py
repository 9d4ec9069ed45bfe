"""Program errors: conditions under which pave cannot do its job.

Problems found *in* documents are never raised; they are reported as
diagnostics. These exceptions abort a command instead.
"""

from __future__ import annotations


class PaveError(RuntimeError):
    """Base class for errors that abort a pave command."""


class ConfigError(PaveError):
    """The configuration file is missing, unreadable or invalid."""


class DocumentReadError(PaveError):
    """A markdown file could not be read or decoded."""


class VcsError(PaveError):
    """The version-control tool could not be run or reported a failure."""
