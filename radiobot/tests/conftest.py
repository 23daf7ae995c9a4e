import logging
import os
import sys
from typing import List, Optional

import pytest


def _ensure_project_root_on_sys_path() -> None:
    here = os.path.dirname(__file__)
    project_root = os.path.abspath(os.path.join(here, "..", ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


_ensure_project_root_on_sys_path()

from radiobot.domain.entities import PlaylistInfo, PlaylistSnapshot  # noqa: E402
from radiobot.domain.errors import NotFound, PermanentFailure  # noqa: E402
from radiobot.domain.normalization import build_entry  # noqa: E402


class FakePlaylistService:
    """In-memory playlist service recording every call.

    ``None`` in ``uris`` stands for an unavailable item that still takes a slot.
    """

    def __init__(self, uris: Optional[List[Optional[str]]] = None, playlist_id: str = "pl1"):
        self.playlist_id = playlist_id
        self.uris = list(uris or [])
        self.calls = []
        self.remove_requests = []
        self.fail_on = {}
        self.version = 0

    def _bump(self) -> str:
        self.version += 1
        return f"snap-{self.version}"

    def _maybe_fail(self, operation: str) -> None:
        error = self.fail_on.get(operation)
        if error is not None:
            raise error

    def _check_playlist(self, playlist_id: str) -> None:
        if playlist_id != self.playlist_id:
            raise NotFound(f"playlist {playlist_id} not found")

    def get_playlist(self, playlist_id: str) -> PlaylistInfo:
        self.calls.append(("get_playlist", playlist_id))
        self._maybe_fail("get_playlist")
        self._check_playlist(playlist_id)
        return PlaylistInfo(id=playlist_id, name="Radio", owner_id="owner", track_count=len(self.uris))

    def read_playlist(self, playlist_id: str) -> PlaylistSnapshot:
        self.calls.append(("read_playlist", playlist_id))
        self._maybe_fail("read_playlist")
        self._check_playlist(playlist_id)
        return PlaylistSnapshot(
            playlist_id=playlist_id,
            entries=tuple(build_entry(uri) for uri in self.uris),
            snapshot_id=f"snap-{self.version}",
        )

    def remove_track(self, playlist_id: str, track_uri: str, position: int,
                     snapshot_id: Optional[str] = None) -> Optional[str]:
        self.calls.append(("remove_track", track_uri))
        self.remove_requests.append((track_uri, position, snapshot_id))
        self._maybe_fail("remove_track")
        self._check_playlist(playlist_id)
        if position >= len(self.uris) or self.uris[position] != track_uri:
            raise PermanentFailure(f"{track_uri} is not at position {position}")
        del self.uris[position]
        return self._bump()

    def append_track(self, playlist_id: str, track_uri: str) -> Optional[str]:
        self.calls.append(("append_track", track_uri))
        self._maybe_fail("append_track")
        self._check_playlist(playlist_id)
        self.uris.append(track_uri)
        return self._bump()

    def mutations(self):
        return [call for call in self.calls if call[0] in ("remove_track", "append_track")]


@pytest.fixture
def fake_service():
    return FakePlaylistService()


@pytest.fixture
def make_service():
    def _make(uris=None, playlist_id="pl1"):
        return FakePlaylistService(uris=uris, playlist_id=playlist_id)
    return _make


@pytest.fixture(autouse=True)
def _clear_bot_env():
    """Keep Discord/Spotify variables from a local .env out of the tests."""
    keys = [
        'DISCORD_BOT_TOKEN', 'DISCORD_CHANNEL_ID', 'SPOTIFY_PLAYLIST_ID', 'SPOTIFY_PLAYLIST_CAP',
        'SPOTIFY_CLIENT_ID', 'SPOTIFY_CLIENT_SECRET', 'SPOTIFY_REDIRECT_URI', 'SPOTIFY_REFRESH_TOKEN',
        'SPOTIFY_TOKEN_CACHE', 'SPOTIFY_REQUEST_TIMEOUT', 'RADIOBOT_REPLY_IN_CHANNEL',
        'RADIOBOT_LOG_LEVEL', 'RADIOBOT_LOG_FORMAT', 'RADIOBOT_HTTP_PORT',
    ]
    backup = {k: os.environ.get(k) for k in keys}
    for k in keys:
        os.environ.pop(k, None)
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


@pytest.fixture(autouse=True)
def _reset_radiobot_logger():
    """Undo setup_logging so caplog keeps seeing radiobot records."""
    yield
    logger = logging.getLogger('radiobot')
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
