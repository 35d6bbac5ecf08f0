"""Exception hierarchy for the engagement layer.

Every failure the engagement layer can signal derives from
:class:`EngagementError`. The ``retryable`` flag tells user-facing code
whether re-triggering the same action may succeed.
"""

from __future__ import annotations

from typing import ClassVar


class EngagementError(RuntimeError):
    """Base exception for engagement and feed failures."""

    retryable: ClassVar[bool] = False


class InvalidArgumentError(EngagementError, ValueError):
    """Raised for missing, empty or malformed identifiers and arguments."""


class InvalidSelfReferenceError(EngagementError):
    """Raised for nonsensical self-directed actions such as following oneself."""


class UnauthenticatedError(EngagementError):
    """Raised when no actor identity is available for a mutation."""


class TargetNotFoundError(EngagementError):
    """Raised when the entity owning a counter does not exist."""


class StoreError(EngagementError):
    """Base class for failures reported by the relation store."""


class StoreUnavailableError(StoreError):
    """Raised when the backing store cannot be reached or fails mid-request."""

    retryable = True


class StoreTimeoutError(StoreUnavailableError):
    """Raised when a store request exceeds the configured timeout."""


class MissingIndexError(StoreError):
    """Raised when a filter + sort combination has no composite index."""


class DocumentExistsError(StoreError):
    """Raised inside a batch when a create targets an existing key."""


class DocumentNotFoundError(StoreError):
    """Raised inside a batch when an update or delete targets a missing key."""


class PreconditionFailedError(StoreError):
    """Raised inside a batch when a document no longer matches expected values."""

    retryable = True


class FeedUnavailableError(EngagementError):
    """Raised when a feed page cannot be fetched and no cached copy exists."""

    retryable = True


class PollClosedError(EngagementError):
    """Raised when voting on a poll whose end time has passed."""


class PollAlreadyVotedError(EngagementError):
    """Raised when a voter already holds an option in the poll."""


class ToggleInFlightError(EngagementError):
    """Reported when a toggle is rejected because another one is still running."""

    retryable = True
