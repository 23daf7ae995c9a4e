import logging
import os
import threading
from datetime import datetime, timezone
from typing import Optional

from flask import Flask, jsonify

from radiobot.crosscutting.metrics import DispatchStats

VERSION = "0.1.0"


class HTTPServer:
    """Health and stats endpoints for the running bot."""

    def __init__(self,
                 stats: Optional[DispatchStats] = None,
                 host: str = '0.0.0.0',
                 port: int = 8080,
                 playlist_id: Optional[str] = None,
                 capacity_bound: Optional[int] = None,
                 is_running=None):
        """Initialize HTTP server.

        Args:
            stats: Dispatcher counters to expose
            host: Interface to bind
            port: Port to bind
            playlist_id: Mirrored playlist, reported by /stats
            capacity_bound: Configured capacity, reported by /stats
            is_running: Callable telling whether the dispatcher worker is alive
        """
        self.stats = stats or DispatchStats()
        self.host = host
        self.port = port
        self.playlist_id = playlist_id
        self.capacity_bound = capacity_bound
        self.is_running = is_running
        self.app = Flask(__name__)
        self.logger = logging.getLogger(__name__)
        self.version = VERSION
        self.commit = os.getenv('GIT_COMMIT', 'unknown')
        self._thread: Optional[threading.Thread] = None

        self._setup_routes()

    def _setup_routes(self) -> None:
        """Setup Flask routes."""

        @self.app.route('/health', methods=['GET'])
        def health_check():
            """Health check endpoint."""
            worker_alive = self.is_running() if self.is_running else True
            return jsonify({
                'status': 'healthy' if worker_alive else 'degraded',
                'worker_alive': worker_alive,
                'version': self.version,
                'commit': self.commit,
                'timestamp': datetime.now(timezone.utc).isoformat()
            }), 200 if worker_alive else 503

        @self.app.route('/stats', methods=['GET'])
        def stats():
            """Dispatcher counters."""
            return jsonify({
                'playlist_id': self.playlist_id,
                'capacity_bound': self.capacity_bound,
                'counters': self.stats.snapshot(),
            }), 200

        @self.app.route('/', methods=['GET'])
        def root():
            """Root endpoint with basic info."""
            return jsonify({
                'service': 'Spotify Radio Bot',
                'version': self.version,
                'endpoints': {
                    'health': '/health',
                    'stats': '/stats'
                }
            }), 200

    def run(self) -> None:
        """Run the HTTP server in the current thread."""
        self.logger.info(f"Starting health server on {self.host}:{self.port}")
        self.app.run(host=self.host, port=self.port, debug=False, use_reloader=False)

    def start_in_background(self) -> threading.Thread:
        """Run the HTTP server on a daemon thread."""
        self._thread = threading.Thread(target=self.run, name='radiobot-http', daemon=True)
        self._thread.start()
        return self._thread


def create_app(stats: Optional[DispatchStats] = None) -> Flask:
    """Create Flask app for testing."""
    server = HTTPServer(stats=stats)
    return server.app
