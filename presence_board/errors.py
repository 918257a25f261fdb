"""Exception types raised by the Presence Board core."""

from __future__ import annotations


class PresenceBoardError(Exception):
    """Base exception for presence board failures."""


class RejectedAction(PresenceBoardError):
    """A user interaction that is refused with feedback and mutates nothing."""

    def __init__(self, feedback: str) -> None:
        super().__init__(feedback)
        self.feedback = feedback


class OwnershipRejection(RejectedAction):
    """Raised when someone other than the owner answers a confirmation."""


class ConfirmationExpired(RejectedAction):
    """Raised when a confirmation is answered after it was closed."""


class DuplicateActionRejection(RejectedAction):
    """Raised when a status is re-pressed or anything is pressed after "out"."""


class PersistenceFailure(PresenceBoardError):
    """Raised when the event log or board store cannot be reached."""


__all__ = [
    "PresenceBoardError",
    "RejectedAction",
    "OwnershipRejection",
    "ConfirmationExpired",
    "DuplicateActionRejection",
    "PersistenceFailure",
]
