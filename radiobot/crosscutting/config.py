import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

DEFAULT_PLAYLIST_CAP = 100
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_REDIRECT_URI = 'http://localhost:8080/callback'
DEFAULT_TOKEN_CACHE = '.spotify_token_cache'

SPOTIFY_SCOPES = [
    'playlist-read-private',        # Read private playlists
    'playlist-read-collaborative',  # Read collaborative playlists
    'playlist-modify-public',       # Modify public playlists
    'playlist-modify-private',      # Modify private playlists
]

_TRUTHY = {'1', 'true', 'yes', 'on'}
_FALSY = {'0', 'false', 'no', 'off'}


class ConfigError(Exception):
    """Configuration error."""
    pass


def get_spotify_scope_string() -> str:
    """Get Spotify scopes as space-separated string."""
    return ' '.join(SPOTIFY_SCOPES)


def get_missing_spotify_scopes(scopes: str) -> list:
    """Get list of required Spotify scopes missing from ``scopes``."""
    provided = set((scopes or '').replace(',', ' ').split())
    return [scope for scope in SPOTIFY_SCOPES if scope not in provided]


@dataclass(frozen=True)
class BotConfig:
    """Process-lifetime configuration of the bot."""

    channel_id: int
    playlist_id: str
    spotify_client_id: str
    spotify_client_secret: str
    capacity_bound: int = DEFAULT_PLAYLIST_CAP
    discord_token: Optional[str] = None
    spotify_redirect_uri: str = DEFAULT_REDIRECT_URI
    spotify_refresh_token: Optional[str] = None
    token_cache_path: str = DEFAULT_TOKEN_CACHE
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    reply_in_channel: bool = True
    log_level: str = 'INFO'
    log_format: str = 'json'
    http_port: Optional[int] = None

    def summary(self) -> Dict[str, Any]:
        """Get configuration summary (without sensitive data)."""
        return {
            'channel_id': self.channel_id,
            'playlist_id': self.playlist_id,
            'capacity_bound': self.capacity_bound,
            'spotify_redirect_uri': self.spotify_redirect_uri,
            'token_cache_path': self.token_cache_path,
            'request_timeout': self.request_timeout,
            'reply_in_channel': self.reply_in_channel,
            'http_port': self.http_port,
            'has_discord_token': bool(self.discord_token),
            'has_spotify_refresh_token': bool(self.spotify_refresh_token),
        }


def _get(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(name)
    if value is None or not str(value).strip():
        return None
    return str(value).strip()


def _require(env: Mapping[str, str], name: str) -> str:
    value = _get(env, name)
    if value is None:
        raise ConfigError(f"{name} environment variable is not set.")
    return value


def _positive_int(env: Mapping[str, str], name: str, default: Optional[int]) -> Optional[int]:
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _positive_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = _get(env, name)
    if raw is None:
        return default
    if raw.lower() in _TRUTHY:
        return True
    if raw.lower() in _FALSY:
        return False
    raise ConfigError(f"{name} must be a boolean flag, got {raw!r}")


def load_config(env: Optional[Mapping[str, str]] = None, require_discord: bool = True) -> BotConfig:
    """Build the bot configuration from environment variables.

    Args:
        env: Mapping to read from, defaults to ``os.environ``
        require_discord: Whether DISCORD_BOT_TOKEN must be present

    Raises:
        ConfigError: If a required variable is missing or a value is invalid
    """
    env = os.environ if env is None else env

    discord_token = _require(env, 'DISCORD_BOT_TOKEN') if require_discord else _get(env, 'DISCORD_BOT_TOKEN')
    channel_id = _positive_int(env, 'DISCORD_CHANNEL_ID', None)
    if channel_id is None:
        raise ConfigError("DISCORD_CHANNEL_ID environment variable is not set.")

    log_format = (_get(env, 'RADIOBOT_LOG_FORMAT') or 'json').lower()
    if log_format not in ('json', 'text'):
        raise ConfigError(f"RADIOBOT_LOG_FORMAT must be 'json' or 'text', got {log_format!r}")

    return BotConfig(
        channel_id=channel_id,
        playlist_id=_require(env, 'SPOTIFY_PLAYLIST_ID'),
        spotify_client_id=_require(env, 'SPOTIFY_CLIENT_ID'),
        spotify_client_secret=_require(env, 'SPOTIFY_CLIENT_SECRET'),
        capacity_bound=_positive_int(env, 'SPOTIFY_PLAYLIST_CAP', DEFAULT_PLAYLIST_CAP),
        discord_token=discord_token,
        spotify_redirect_uri=_get(env, 'SPOTIFY_REDIRECT_URI') or DEFAULT_REDIRECT_URI,
        spotify_refresh_token=_get(env, 'SPOTIFY_REFRESH_TOKEN'),
        token_cache_path=_get(env, 'SPOTIFY_TOKEN_CACHE') or DEFAULT_TOKEN_CACHE,
        request_timeout=_positive_float(env, 'SPOTIFY_REQUEST_TIMEOUT', DEFAULT_REQUEST_TIMEOUT),
        reply_in_channel=_flag(env, 'RADIOBOT_REPLY_IN_CHANNEL', True),
        log_level=(_get(env, 'RADIOBOT_LOG_LEVEL') or 'INFO').upper(),
        log_format=log_format,
        http_port=_positive_int(env, 'RADIOBOT_HTTP_PORT', None),
    )
