from __future__ import annotations

from typing import Optional, Protocol

from .entities import PlaylistInfo, PlaylistSnapshot


class PlaylistService(Protocol):
    """Port defining the minimal contract for the remote playlist service.

    Implementations own authentication and session renewal, and map transport
    and auth failures onto the provider error taxonomy in ``radiobot.domain.errors``.
    """

    def get_playlist(self, playlist_id: str) -> PlaylistInfo:
        """Return playlist metadata."""

    def read_playlist(self, playlist_id: str) -> PlaylistSnapshot:
        """Return every item of the playlist in playlist order, across all pages.

        Unavailable items are kept as placeholder entries so the snapshot
        length matches the number of slots used on the service.
        """

    def remove_track(self, playlist_id: str, track_uri: str, position: int,
                     snapshot_id: Optional[str] = None) -> Optional[str]:
        """Remove the single item at ``position``, which must hold ``track_uri``.

        ``snapshot_id`` pins the position to the playlist version that was read.
        Returns the new snapshot id if known.
        """

    def append_track(self, playlist_id: str, track_uri: str) -> Optional[str]:
        """Append the track at the end of the playlist. Returns the new snapshot id if known."""


class Notifier(Protocol):
    """Port for posting short status messages back to a chat channel."""

    def send(self, channel_id: int, text: str) -> None:
        """Deliver ``text`` to the channel. Must not block the caller for long."""
