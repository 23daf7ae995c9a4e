import argparse
import logging
import signal
import sys
import time
from typing import Optional

from dotenv import load_dotenv

from radiobot.application.dispatcher import EventDispatcher
from radiobot.application.pipeline import MirrorPipeline
from radiobot.application.snapshot import PlaylistStateReader
from radiobot.crosscutting.config import BotConfig, ConfigError, get_missing_spotify_scopes, load_config
from radiobot.crosscutting.logging import log_with_fields, setup_logging
from radiobot.crosscutting.metrics import DispatchStats
from radiobot.domain.errors import ProviderError, RemoteUnavailable
from radiobot.domain.links import detect, detect_all
from radiobot.infrastructure.chat.discord_bot import DiscordNotifier, RadioBotClient
from radiobot.infrastructure.providers.spotify import (
    SpotifyPlaylistService, create_auth_manager, create_spotify_client,
)
from radiobot.interfaces.http import HTTPServer

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR']


class CLI:
    """Command Line Interface for the radio bot."""

    def __init__(self):
        """Initialize CLI."""
        self.parser = self._create_parser()
        self._start_time = None

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        parser = argparse.ArgumentParser(
            prog='radiobot',
            description='Mirror Spotify tracks shared in a Discord channel into a capped playlist'
        )

        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        run_parser = subparsers.add_parser('run', help='Start the bot')
        self._add_logging_arguments(run_parser)
        run_parser.add_argument(
            '--http-port',
            type=int,
            default=None,
            help='Serve /health and /stats on this port (default: RADIOBOT_HTTP_PORT or disabled)'
        )
        run_parser.add_argument(
            '--no-reply',
            action='store_true',
            help='Do not post status replies in the channel'
        )

        status_parser = subparsers.add_parser('status', help='Show playlist size and capacity')
        self._add_logging_arguments(status_parser)

        detect_parser = subparsers.add_parser('detect', help='Show the track links found in a text')
        detect_parser.add_argument('text', help='Message text to scan')
        self._add_logging_arguments(detect_parser)

        authorize_parser = subparsers.add_parser('authorize', help='Authorize Spotify and fill the token cache')
        self._add_logging_arguments(authorize_parser)

        return parser

    def _add_logging_arguments(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            '--log-level',
            choices=LOG_LEVELS,
            default=None,
            help='Set logging level (default: RADIOBOT_LOG_LEVEL or INFO)'
        )
        parser.add_argument(
            '--log-format',
            choices=['json', 'text'],
            default=None,
            help='Log output format (default: RADIOBOT_LOG_FORMAT or json)'
        )

    def _setup_signal_handlers(self) -> None:
        """Turn SIGTERM into KeyboardInterrupt so shutdown follows the Ctrl+C path."""
        def signal_handler(signum, frame):
            logger = logging.getLogger(__name__)
            logger.warning(f"Received signal {signum}, shutting down gracefully...")
            raise KeyboardInterrupt

        signal.signal(signal.SIGTERM, signal_handler)

    def _setup_logging(self, args: argparse.Namespace, config: Optional[BotConfig] = None) -> None:
        """Setup logging configuration, command line taking precedence over config."""
        level = args.log_level or (config.log_level if config else 'INFO')
        log_format = args.log_format or (config.log_format if config else 'text')
        setup_logging(level=level, json_format=log_format == 'json')

    def _cleanup_resources(self) -> None:
        """Clean up resources on exit."""
        logger = logging.getLogger(__name__)
        if self._start_time:
            duration = time.time() - self._start_time
            logger.info(f"CLI execution time: {duration:.2f}s")

    def _create_playlist_service(self, config: BotConfig) -> SpotifyPlaylistService:
        """Create the Spotify playlist service.

        Raises:
            ConfigError: If no Spotify token is cached, since spotipy would
                otherwise block on an interactive prompt, or if the cached
                token was granted without the playlist scopes
        """
        auth_manager = create_auth_manager(config)
        token_info = auth_manager.cache_handler.get_cached_token()
        if not token_info:
            raise ConfigError(
                "No Spotify token cached. Run 'radiobot authorize' or set SPOTIFY_REFRESH_TOKEN."
            )
        missing = get_missing_spotify_scopes(token_info.get('scope', ''))
        if missing:
            raise ConfigError(
                f"Cached Spotify token lacks scopes: {', '.join(missing)}. Run 'radiobot authorize' again."
            )
        return SpotifyPlaylistService(create_spotify_client(config, auth_manager=auth_manager))

    def _create_pipeline(self, config: BotConfig) -> MirrorPipeline:
        return MirrorPipeline(
            service=self._create_playlist_service(config),
            playlist_id=config.playlist_id,
            capacity_bound=config.capacity_bound,
        )

    def _run_bot(self, args: argparse.Namespace) -> None:
        """Start the Discord client and the dispatcher worker."""
        logger = logging.getLogger(__name__)

        config = load_config()
        self._setup_logging(args, config)
        log_with_fields(logger, 'INFO', "Starting radio bot", config.summary())

        stats = DispatchStats()
        notifier = DiscordNotifier()
        dispatcher = EventDispatcher(
            channel_id=config.channel_id,
            pipeline=self._create_pipeline(config),
            notifier=notifier,
            stats=stats,
            reply_in_channel=config.reply_in_channel and not args.no_reply,
        )
        client = RadioBotClient(dispatcher, notifier)

        http_port = args.http_port or config.http_port
        if http_port:
            HTTPServer(
                stats=stats,
                port=http_port,
                playlist_id=config.playlist_id,
                capacity_bound=config.capacity_bound,
                is_running=lambda: dispatcher.running,
            ).start_in_background()

        logger.info(f"Playlist cap set to {config.capacity_bound} songs.")
        logger.info(f"Bot will monitor channel ID: {config.channel_id}")
        client.run(config.discord_token, log_handler=None)

    def _show_status(self, args: argparse.Namespace) -> None:
        """Print playlist size, capacity and the entries next in line."""
        config = load_config(require_discord=False)
        self._setup_logging(args, config)

        service = self._create_playlist_service(config)
        try:
            info = service.get_playlist(config.playlist_id)
        except ProviderError as e:
            raise RemoteUnavailable(config.playlist_id, e) from e
        snapshot = PlaylistStateReader(service).fetch_snapshot(config.playlist_id)

        print(f"Playlist: {info.name} ({info.id})")
        print(f"Entries: {len(snapshot)}/{config.capacity_bound}")
        if len(snapshot) > config.capacity_bound:
            print(f"Over capacity by {len(snapshot) - config.capacity_bound}; shrinks by one per new track")
        oldest = snapshot.oldest()
        if oldest:
            print(f"Oldest (next to evict): {oldest.label()} [{oldest.uri or '-'}]")
            if not oldest.removable:
                print("Oldest entry cannot be removed through the API; new tracks are refused at capacity")
            newest = snapshot.entries[-1]
            print(f"Newest: {newest.label()} [{newest.uri or '-'}]")

    def _detect(self, args: argparse.Namespace) -> None:
        """Print the track ids found in a text."""
        self._setup_logging(args)
        first = detect(args.text)
        if not first:
            print("No track link found")
            return
        print(f"Processed: {first.uri}")
        for other in detect_all(args.text)[1:]:
            print(f"Ignored: {other.uri}")

    def _authorize(self, args: argparse.Namespace) -> None:
        """Authorize against Spotify once so the bot can run headless afterwards."""
        config = load_config(require_discord=False)
        self._setup_logging(args, config)

        auth_manager = create_auth_manager(config, open_browser=True)
        client = create_spotify_client(config, auth_manager=auth_manager)
        user = client.current_user()
        print(f"Authorized as {user.get('display_name') or user.get('id')}")
        print(f"Token cached in {config.token_cache_path}")

    def run(self, argv=None) -> None:
        """Run the CLI."""
        self._start_time = time.time()

        try:
            args = self.parser.parse_args(argv)

            if not args.command:
                self.parser.print_help()
                sys.exit(1)

            self._setup_signal_handlers()

            if args.command == 'run':
                self._run_bot(args)
            elif args.command == 'status':
                self._show_status(args)
            elif args.command == 'detect':
                self._detect(args)
            elif args.command == 'authorize':
                self._authorize(args)
            else:
                self.parser.print_help()
                sys.exit(1)

        except KeyboardInterrupt:
            logger = logging.getLogger(__name__)
            logger.warning("Operation cancelled by user")
            sys.exit(130)
        except ConfigError as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            sys.exit(1)
        except (RemoteUnavailable, ProviderError) as e:
            logger = logging.getLogger(__name__)
            logger.error(f"Spotify error: {e}")
            sys.exit(1)
        finally:
            self._cleanup_resources()


def main():
    """Main entry point."""
    load_dotenv()
    cli = CLI()
    cli.run()


if __name__ == '__main__':
    main()
