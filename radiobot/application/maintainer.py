"""Bounded FIFO policy for the mirrored playlist.

Each admitted track evicts at most one entry, so a playlist that is already
over its bound for external reasons shrinks by one per event instead of being
trimmed in one go.
"""

import logging

from radiobot.domain.entities import (
    Action, Append, EvictOldestThenAppend, PlaylistSnapshot, Skip, SkipReason, TrackRef,
)
from radiobot.domain.errors import (
    MutationOperation, OldestNotRemovable, ProviderError, RemoteMutationFailed,
)
from radiobot.domain.ports import PlaylistService


logger = logging.getLogger(__name__)


def plan_action(snapshot: PlaylistSnapshot, candidate: TrackRef, capacity_bound: int) -> Action:
    """Decide what to do with ``candidate`` without touching the remote playlist."""
    if capacity_bound <= 0:
        raise ValueError(f"capacity_bound must be positive, got {capacity_bound}")

    if snapshot.contains(candidate):
        return Skip(candidate=candidate, reason=SkipReason.ALREADY_PRESENT)

    if len(snapshot) >= capacity_bound:
        return EvictOldestThenAppend(evicted=snapshot.oldest(), appended=candidate)

    return Append(appended=candidate)


class PlaylistMaintainer:
    """Applies the bounded-playlist policy against the remote service."""

    def __init__(self, service: PlaylistService):
        self._service = service

    def reconcile(self, snapshot: PlaylistSnapshot, candidate: TrackRef, capacity_bound: int) -> Action:
        """Plan the action for ``candidate`` and issue the matching mutations.

        Args:
            snapshot: Fresh read of the playlist
            candidate: Track to admit
            capacity_bound: Maximum number of entries the playlist should hold

        Returns:
            The applied action

        Raises:
            OldestNotRemovable: If the oldest entry is a local file or an
                unavailable item. Nothing is mutated.
            RemoteMutationFailed: If the removal or the append failed. A failed
                removal means nothing was appended.
        """
        action = plan_action(snapshot, candidate, capacity_bound)
        playlist_id = snapshot.playlist_id

        if isinstance(action, Skip):
            logger.info(f"Track {candidate.uri} already in playlist {playlist_id}, skipping")
            return action

        evicted = None
        if isinstance(action, EvictOldestThenAppend):
            if not action.evicted.removable:
                logger.warning(f"Oldest entry {action.evicted.label()} of {playlist_id} cannot be removed")
                raise OldestNotRemovable(playlist_id, action.evicted)
            try:
                # The oldest entry sits at position 0 of the snapshot that was read
                self._service.remove_track(playlist_id, action.evicted.uri, 0,
                                           snapshot_id=snapshot.snapshot_id)
            except ProviderError as e:
                logger.error(f"Failed to remove oldest track {action.evicted.uri} from {playlist_id}: {e}")
                raise RemoteMutationFailed(MutationOperation.REMOVE, e, action=action) from e
            evicted = action.evicted
            logger.info(f"Removed oldest track {evicted.uri} from playlist {playlist_id}")

        try:
            self._service.append_track(playlist_id, candidate.uri)
        except ProviderError as e:
            logger.error(f"Failed to append {candidate.uri} to {playlist_id}: {e}")
            raise RemoteMutationFailed(MutationOperation.APPEND, e, action=action, evicted=evicted) from e

        logger.info(f"Appended {candidate.uri} to playlist {playlist_id}")
        return action
