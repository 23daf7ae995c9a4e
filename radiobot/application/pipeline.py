import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional

from radiobot.application.maintainer import PlaylistMaintainer
from radiobot.application.snapshot import PlaylistStateReader
from radiobot.crosscutting.logging import CorrelationContext, log_action
from radiobot.domain.entities import Action, TrackRef
from radiobot.domain.ports import PlaylistService


logger = logging.getLogger(__name__)


@dataclass
class MirrorResult:
    """Result of mirroring one candidate into the playlist."""

    candidate: TrackRef
    action: Action
    snapshot_size: int
    capacity_bound: int
    duration_ms: int


class MirrorPipeline:
    """Read-decide-mutate sequence for a single playlist.

    The service handle is owned here and shared with the reader and the
    maintainer. Calls to ``mirror`` are serialized with a lock, so at most one
    reconcile is in flight against the playlist from this process.
    """

    def __init__(self,
                 service: PlaylistService,
                 playlist_id: str,
                 capacity_bound: int,
                 reader: Optional[PlaylistStateReader] = None,
                 maintainer: Optional[PlaylistMaintainer] = None):
        if capacity_bound <= 0:
            raise ValueError(f"capacity_bound must be positive, got {capacity_bound}")
        self.service = service
        self.playlist_id = playlist_id
        self.capacity_bound = capacity_bound
        self.reader = reader or PlaylistStateReader(service)
        self.maintainer = maintainer or PlaylistMaintainer(service)
        self._lock = threading.Lock()

    def mirror(self, candidate: TrackRef) -> MirrorResult:
        """Admit ``candidate`` into the playlist according to the capacity policy.

        Raises:
            RemoteUnavailable: If the playlist could not be read
            OldestNotRemovable: If the playlist is full and its oldest entry
                cannot be deleted
            RemoteMutationFailed: If a removal or append failed
        """
        with self._lock, CorrelationContext(playlist_id=self.playlist_id):
            start = time.monotonic()
            snapshot = self.reader.fetch_snapshot(self.playlist_id)
            action = self.maintainer.reconcile(snapshot, candidate, self.capacity_bound)
            duration_ms = int((time.monotonic() - start) * 1000)

            log_action(logger, type(action).__name__, len(snapshot), self.capacity_bound,
                       duration_ms, track_uri=candidate.uri)

            return MirrorResult(
                candidate=candidate,
                action=action,
                snapshot_size=len(snapshot),
                capacity_bound=self.capacity_bound,
                duration_ms=duration_ms,
            )
