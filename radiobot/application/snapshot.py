import logging

from radiobot.domain.entities import PlaylistSnapshot
from radiobot.domain.errors import ProviderError, RemoteUnavailable
from radiobot.domain.ports import PlaylistService


logger = logging.getLogger(__name__)


class PlaylistStateReader:
    """Reads the complete, ordered contents of a playlist."""

    def __init__(self, service: PlaylistService):
        self._service = service

    def fetch_snapshot(self, playlist_id: str) -> PlaylistSnapshot:
        """Fetch every entry of the playlist, oldest first.

        Raises:
            RemoteUnavailable: If the service could not be read
        """
        try:
            snapshot = self._service.read_playlist(playlist_id)
        except ProviderError as e:
            logger.warning(f"Failed to read playlist {playlist_id}: {e}")
            raise RemoteUnavailable(playlist_id, e) from e

        logger.debug(f"Read {len(snapshot)} entries from playlist {playlist_id} "
                     f"(snapshot {snapshot.snapshot_id})")
        return snapshot
