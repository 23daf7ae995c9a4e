from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .entities import Action, PlaylistEntry


class ProviderError(Exception):
    """Base class for failures reported by a playlist service adapter."""


class RateLimited(ProviderError):
    """Operation was rate limited by provider. Includes suggested wait time in milliseconds."""

    def __init__(self, retry_after_ms: int, message: str = "Rate limited") -> None:
        super().__init__(message)
        self.retry_after_ms = retry_after_ms


class TemporaryFailure(ProviderError):
    """Transient provider or network failure. Retrying may succeed."""


class PermanentFailure(ProviderError):
    """Non-retriable failure due to invalid input or authorization issues."""


class NotFound(ProviderError):
    """Requested resource was not found."""


class MutationOperation(str, Enum):
    REMOVE = "remove"
    APPEND = "append"


class RemoteUnavailable(Exception):
    """Playlist state could not be read; no mutation may follow."""

    def __init__(self, playlist_id: str, cause: Exception) -> None:
        super().__init__(f"Playlist {playlist_id} unavailable: {cause}")
        self.playlist_id = playlist_id
        self.cause = cause


class RemoteMutationFailed(Exception):
    """A removal or append failed after a successful read.

    ``evicted`` is set when the removal already went through and the append
    failed, so callers can report the partial completion.
    """

    def __init__(self,
                 operation: MutationOperation,
                 cause: Exception,
                 action: Optional["Action"] = None,
                 evicted: Optional["PlaylistEntry"] = None) -> None:
        super().__init__(f"{operation.value} failed: {cause}")
        self.operation = operation
        self.cause = cause
        self.action = action
        self.evicted = evicted

    @property
    def partial(self) -> bool:
        return self.evicted is not None


class OldestNotRemovable(Exception):
    """The oldest entry cannot be deleted through the service (local file or unavailable item).

    Raised before any mutation, so the playlist is left untouched.
    """

    def __init__(self, playlist_id: str, entry: "PlaylistEntry") -> None:
        super().__init__(f"Oldest entry of playlist {playlist_id} cannot be removed: {entry.label()}")
        self.playlist_id = playlist_id
        self.entry = entry
