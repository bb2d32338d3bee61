"""
Engine error taxonomy.

    NotFoundError             — a referenced player, cohort, policy, campaign,
                                election or session does not exist
    InvalidStateError         — an operation arrived out of order (voting on a
                                resolved policy, completing a campaign twice, ...)
    MalformedResponseError    — the text-generation collaborator returned
                                content that cannot be parsed or validated
    NarrativeUnavailableError — the text-generation collaborator could not be
                                reached or refused the request

Reputation records are the one exception to NotFoundError: they are created
lazily with default values on first access.
"""

from __future__ import annotations

from typing import Any


class PolsimError(Exception):
    """Base class for all engine errors."""
    pass


class NotFoundError(PolsimError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, kind: str, identifier: Any) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class InvalidStateError(PolsimError):
    """Raised when an operation is attempted in the wrong lifecycle state."""
    pass


class MalformedResponseError(PolsimError):
    """Raised when the text-generation collaborator returns unusable content."""

    def __init__(self, message: str, raw: str | None = None) -> None:
        self.raw = raw
        super().__init__(message)


class NarrativeUnavailableError(PolsimError):
    """Raised when the text-generation collaborator call itself fails."""
    pass
