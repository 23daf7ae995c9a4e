from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional, Tuple, Union


@dataclass(frozen=True)
class TrackRef:
    """Domain value identifying a single track independent of where it was seen."""

    id: str
    scheme: str = "spotify"
    name: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        if not self.id:
            raise ValueError("TrackRef id must not be empty")

    @property
    def uri(self) -> str:
        return f"{self.scheme}:track:{self.id}"

    def label(self) -> str:
        """Human readable label used in replies and logs."""
        return self.name or self.uri


@dataclass(frozen=True)
class PlaylistEntry:
    """One item of a remote playlist as reported by the service.

    ``track`` is only set when ``uri`` normalizes to a canonical track uri;
    local files and podcast episodes keep ``track=None`` but still take up a slot.
    Unavailable items have no uri at all and are kept as placeholders.
    """

    uri: Optional[str]
    track: Optional[TrackRef] = None
    name: Optional[str] = None

    @property
    def removable(self) -> bool:
        """Whether the service can delete this item. Local files and placeholders cannot be."""
        return bool(self.uri) and ":local:" not in self.uri

    def label(self) -> str:
        return self.name or self.uri or "unavailable item"


@dataclass(frozen=True)
class PlaylistSnapshot:
    """Point-in-time ordered read of a playlist, oldest entry first."""

    playlist_id: str
    entries: Tuple[PlaylistEntry, ...] = ()
    snapshot_id: Optional[str] = None

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[PlaylistEntry]:
        return iter(self.entries)

    def contains(self, track: TrackRef) -> bool:
        return any(entry.track is not None and entry.track.uri == track.uri for entry in self.entries)

    def oldest(self) -> Optional[PlaylistEntry]:
        return self.entries[0] if self.entries else None


@dataclass(frozen=True)
class PlaylistInfo:
    """Playlist metadata used by the status command."""

    id: str
    name: str
    owner_id: str
    track_count: int = 0


@dataclass(frozen=True)
class ChatMessage:
    """Inbound chat message handed over by the chat session provider."""

    channel_id: int
    content: str
    author_is_bot: bool = False
    message_id: Optional[int] = None
    author: Optional[str] = None


class SkipReason(str, Enum):
    ALREADY_PRESENT = "already_present"


@dataclass(frozen=True)
class Skip:
    candidate: TrackRef
    reason: SkipReason = SkipReason.ALREADY_PRESENT


@dataclass(frozen=True)
class EvictOldestThenAppend:
    evicted: PlaylistEntry
    appended: TrackRef


@dataclass(frozen=True)
class Append:
    appended: TrackRef


Action = Union[Skip, EvictOldestThenAppend, Append]
