import logging
from typing import Any, Dict, Optional

import requests
import spotipy
from spotipy.cache_handler import CacheFileHandler
from spotipy.exceptions import SpotifyException
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError
from urllib3.exceptions import ReadTimeoutError

from radiobot.crosscutting.config import BotConfig, get_spotify_scope_string
from radiobot.domain.entities import PlaylistEntry, PlaylistInfo, PlaylistSnapshot
from radiobot.domain.errors import (
    NotFound, PermanentFailure, ProviderError, RateLimited, TemporaryFailure,
)
from radiobot.domain.normalization import build_entry
from radiobot.domain.ports import PlaylistService

logger = logging.getLogger(__name__)

# Spotify returns at most 100 playlist items per page
PAGE_SIZE = 100
ITEM_FIELDS = 'items(track(uri,name,type,is_local)),next'

# Everything spotipy and its transport can raise for a single call
SPOTIFY_ERRORS = (
    SpotifyException,
    SpotifyOauthError,
    requests.exceptions.RequestException,
    ReadTimeoutError,
)


class SpotifyPlaylistService(PlaylistService):
    """Spotify implementation of the playlist service port."""

    def __init__(self, client: spotipy.Spotify):
        """Initialize the service.

        Args:
            client: Authenticated spotipy client. Token renewal is handled by
                its auth manager.
        """
        self._client = client

    def _translate_error(self, error: Exception, operation: str) -> ProviderError:
        """Map a spotipy or transport error onto the provider error taxonomy.

        Args:
            error: The exception raised by spotipy or requests
            operation: Description of the operation being performed

        Returns:
            The provider error to raise
        """
        if isinstance(error, SpotifyException):
            status = error.http_status
            if status == 429:
                headers = error.headers or {}
                try:
                    retry_after = int(headers.get('Retry-After', 1))
                except (TypeError, ValueError):
                    retry_after = 1
                return RateLimited(retry_after_ms=retry_after * 1000,
                                   message=f"Rate limited during {operation}")
            if status == 404:
                return NotFound(f"{operation}: {error.msg}")
            if status in (400, 401, 403):
                return PermanentFailure(f"{operation} rejected ({status}): {error.msg}")
            return TemporaryFailure(f"{operation} failed ({status}): {error.msg}")
        if isinstance(error, SpotifyOauthError):
            # Token refresh rejected, e.g. a revoked refresh token
            return PermanentFailure(f"{operation} unauthorized: {error}")
        # Timeouts and connection errors
        return TemporaryFailure(f"{operation} failed: {error}")

    def _item_to_entry(self, item: Optional[Dict[str, Any]]) -> PlaylistEntry:
        """Convert a playlist item to a domain entry.

        Items whose track is gone still occupy a slot and become placeholders.
        """
        track = item.get('track') if item else None
        if not track or not track.get('uri'):
            return build_entry(None)
        return build_entry(track['uri'], name=track.get('name'))

    def get_playlist(self, playlist_id: str) -> PlaylistInfo:
        """Get playlist metadata.

        Args:
            playlist_id: Playlist ID

        Returns:
            Playlist metadata with the reported track count
        """
        try:
            data = self._client.playlist(playlist_id, fields='id,name,owner(id),tracks(total)')
        except SPOTIFY_ERRORS as e:
            logger.error(f"Failed to get playlist {playlist_id}: {e}")
            raise self._translate_error(e, 'get playlist') from e

        return PlaylistInfo(
            id=data.get('id', playlist_id),
            name=data.get('name', ''),
            owner_id=(data.get('owner') or {}).get('id', ''),
            track_count=(data.get('tracks') or {}).get('total', 0),
        )

    def read_playlist(self, playlist_id: str) -> PlaylistSnapshot:
        """Read every item of a playlist in playlist order.

        The snapshot id is read first, then the items, following the ``next``
        link of each page until the last one.

        Args:
            playlist_id: Playlist ID

        Returns:
            Snapshot of the playlist, oldest entry first
        """
        entries = []
        try:
            snapshot_id = (self._client.playlist(playlist_id, fields='snapshot_id') or {}).get('snapshot_id')
            page = self._client.playlist_items(
                playlist_id,
                fields=ITEM_FIELDS,
                limit=PAGE_SIZE,
                offset=0,
                additional_types=('track', 'episode'),
            )
            while page:
                entries.extend(self._item_to_entry(item) for item in page.get('items', []))
                page = self._client.next(page) if page.get('next') else None
        except SPOTIFY_ERRORS as e:
            logger.error(f"Failed to list tracks for playlist {playlist_id}: {e}")
            raise self._translate_error(e, 'list playlist tracks') from e

        unavailable = sum(1 for entry in entries if entry.uri is None)
        if unavailable:
            logger.debug(f"Playlist {playlist_id} holds {unavailable} unavailable items")
        return PlaylistSnapshot(playlist_id=playlist_id, entries=tuple(entries), snapshot_id=snapshot_id)

    def remove_track(self, playlist_id: str, track_uri: str, position: int,
                     snapshot_id: Optional[str] = None) -> Optional[str]:
        """Remove the single occurrence of a track at a given position.

        Args:
            playlist_id: Playlist ID
            track_uri: Uri of the item at ``position``
            position: Zero-based position of the item
            snapshot_id: Playlist version the position refers to

        Returns:
            The playlist snapshot id after the removal, if reported
        """
        try:
            result = self._client.playlist_remove_specific_occurrences_of_items(
                playlist_id,
                [{'uri': track_uri, 'positions': [position]}],
                snapshot_id=snapshot_id,
            )
        except SPOTIFY_ERRORS as e:
            raise self._translate_error(e, 'remove track') from e
        return (result or {}).get('snapshot_id')

    def append_track(self, playlist_id: str, track_uri: str) -> Optional[str]:
        """Append a track at the end of a playlist.

        Args:
            playlist_id: Playlist ID
            track_uri: Uri of the track to add

        Returns:
            The playlist snapshot id after the append, if reported
        """
        try:
            result = self._client.playlist_add_items(playlist_id, [track_uri])
        except SPOTIFY_ERRORS as e:
            raise self._translate_error(e, 'append track') from e
        return (result or {}).get('snapshot_id')


def create_auth_manager(config: BotConfig, open_browser: bool = False) -> SpotifyOAuth:
    """Create the OAuth manager that owns the Spotify session.

    A refresh token from the environment seeds the token cache on first start
    so the bot can run headless.
    """
    cache_handler = CacheFileHandler(cache_path=config.token_cache_path)
    auth_manager = SpotifyOAuth(
        client_id=config.spotify_client_id,
        client_secret=config.spotify_client_secret,
        redirect_uri=config.spotify_redirect_uri,
        scope=get_spotify_scope_string(),
        cache_handler=cache_handler,
        open_browser=open_browser,
        requests_timeout=config.request_timeout,
    )

    if config.spotify_refresh_token and not cache_handler.get_cached_token():
        logger.info("Seeding Spotify token cache from SPOTIFY_REFRESH_TOKEN")
        cache_handler.save_token_to_cache({
            'access_token': '',
            'token_type': 'Bearer',
            'refresh_token': config.spotify_refresh_token,
            'scope': get_spotify_scope_string(),
            'expires_in': 0,
            'expires_at': 0,
        })

    return auth_manager


def create_spotify_client(config: BotConfig, auth_manager: Optional[SpotifyOAuth] = None) -> spotipy.Spotify:
    """Create a spotipy client with a bounded timeout and no automatic retries."""
    return spotipy.Spotify(
        auth_manager=auth_manager or create_auth_manager(config),
        requests_timeout=config.request_timeout,
        retries=0,
        status_retries=0,
    )
