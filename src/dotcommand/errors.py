"""Exception types raised by the command store and its collaborators."""

from __future__ import annotations


class DotCommandError(Exception):
    """Base class for dotcommand errors."""


class ValidationError(DotCommandError):
    """Raised for empty command text or an override pattern that does not compile."""


class NotFoundError(DotCommandError):
    """Raised when an operation references a missing or wrong-state record."""


class PersistenceError(DotCommandError):
    """Raised when the storage backend fails."""
