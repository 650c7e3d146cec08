"""Error taxonomy for the command-session manager.

Validation and not-found conditions are raised to the immediate caller.
Spawn and runtime failures never escape ``execute``: they are captured
into the session's terminal state instead.
"""

from __future__ import annotations


class TermctlError(Exception):
    """Base class for all termctl errors."""


class ValidationError(TermctlError, ValueError):
    """Blocked command, disallowed directory, or malformed argument."""


class SpawnError(TermctlError, OSError):
    """The OS refused to create the process."""


class NotFoundError(TermctlError, LookupError):
    """Unknown session id or PID."""


class SignalError(TermctlError):
    """Signal delivery failed for a reason other than the target being gone."""
