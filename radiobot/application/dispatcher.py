import logging
import queue
import threading
from typing import Optional

from radiobot.application.pipeline import MirrorPipeline, MirrorResult
from radiobot.crosscutting.logging import CorrelationContext, log_candidate, log_error
from radiobot.crosscutting.metrics import DispatchStats
from radiobot.domain.entities import Append, ChatMessage, EvictOldestThenAppend, Skip
from radiobot.domain.errors import (
    MutationOperation, OldestNotRemovable, RemoteMutationFailed, RemoteUnavailable,
)
from radiobot.domain.links import DEFAULT_SERVICE_DOMAIN, detect, mentions_track_link
from radiobot.domain.ports import Notifier


logger = logging.getLogger(__name__)

REPLY_DETECTED = "Spotify link detected! Checking playlist..."
REPLY_NO_ID = "Could not extract track ID from the link."
REPLY_ALREADY_PRESENT = "That track is already in the playlist."
REPLY_REMOVED = "Removed the oldest track: {name}."
REPLY_ADDED = "Track successfully added to the playlist!"
REPLY_READ_FAILED = "Could not read the playlist: {error}"
REPLY_NO_OLDEST = "Could not identify the oldest track to remove."
REPLY_REMOVE_FAILED = "Error removing the oldest track: {error}"
REPLY_APPEND_FAILED = "Error adding track: {error}"

_STOP = object()


class EventDispatcher:
    """Routes chat messages from the watched channel into the mirror pipeline.

    Messages are consumed by a single worker thread, so reconciles never
    overlap. ``handle`` can also be called directly for synchronous use.
    """

    def __init__(self,
                 channel_id: int,
                 pipeline: MirrorPipeline,
                 notifier: Optional[Notifier] = None,
                 stats: Optional[DispatchStats] = None,
                 reply_in_channel: bool = True,
                 domain: str = DEFAULT_SERVICE_DOMAIN):
        self.channel_id = channel_id
        self.pipeline = pipeline
        self.notifier = notifier
        self.stats = stats or DispatchStats()
        self.reply_in_channel = reply_in_channel
        self.domain = domain
        self._queue: "queue.Queue" = queue.Queue()
        self._worker: Optional[threading.Thread] = None

    def accepts(self, message: ChatMessage) -> bool:
        """True for human messages posted in the watched channel."""
        return not message.author_is_bot and message.channel_id == self.channel_id

    def submit(self, message: ChatMessage) -> bool:
        """Queue a message for the worker. Never blocks.

        Returns:
            True if the message was queued, False if it was filtered out
        """
        if not self.accepts(message):
            self.stats.increment('messages_seen')
            self.stats.increment('messages_ignored')
            return False
        self._queue.put_nowait(message)
        return True

    def handle(self, message: ChatMessage) -> Optional[MirrorResult]:
        """Process one message end to end.

        Remote failures are logged, counted and reported to the channel; they
        are never raised to the caller.
        """
        self.stats.increment('messages_seen')
        if not self.accepts(message):
            self.stats.increment('messages_ignored')
            return None

        with CorrelationContext(message_id=message.message_id, channel_id=message.channel_id):
            candidate = detect(message.content, domain=self.domain)
            if candidate is None:
                if mentions_track_link(message.content, domain=self.domain):
                    logger.info("Track link found but no track id could be extracted")
                    self._reply(message, REPLY_NO_ID)
                return None

            self.stats.increment('links_detected')
            log_candidate(logger, candidate.uri, author=message.author)
            self._reply(message, REPLY_DETECTED)

            try:
                result = self.pipeline.mirror(candidate)
            except RemoteUnavailable as e:
                self.stats.increment('read_failures')
                log_error(logger, "Playlist read failed, dropping event", e, track_uri=candidate.uri)
                self._reply(message, REPLY_READ_FAILED.format(error=e.cause))
                return None
            except OldestNotRemovable as e:
                self.stats.increment('blocked_evictions')
                log_error(logger, "Oldest entry cannot be removed, dropping event", e,
                          track_uri=candidate.uri, oldest=e.entry.label())
                self._reply(message, REPLY_NO_OLDEST)
                return None
            except RemoteMutationFailed as e:
                self._report_mutation_failure(message, e)
                return None

            self._report(message, result)
            return result

    def _report(self, message: ChatMessage, result: MirrorResult) -> None:
        action = result.action
        if isinstance(action, Skip):
            self.stats.increment('skipped')
            self._reply(message, REPLY_ALREADY_PRESENT)
            return
        if isinstance(action, EvictOldestThenAppend):
            self.stats.increment('evicted')
            self._reply(message, REPLY_REMOVED.format(name=action.evicted.label()))
        if isinstance(action, (Append, EvictOldestThenAppend)):
            self.stats.increment('appended')
            self._reply(message, REPLY_ADDED)

    def _report_mutation_failure(self, message: ChatMessage, error: RemoteMutationFailed) -> None:
        self.stats.increment('mutation_failures')
        log_error(logger, "Playlist mutation failed", error,
                  operation=error.operation.value,
                  partial=error.partial,
                  evicted_uri=error.evicted.uri if error.evicted else None)
        if error.operation is MutationOperation.REMOVE:
            self._reply(message, REPLY_REMOVE_FAILED.format(error=error.cause))
            return
        if error.evicted is not None:
            self.stats.increment('evicted')
            self._reply(message, REPLY_REMOVED.format(name=error.evicted.label()))
        self._reply(message, REPLY_APPEND_FAILED.format(error=error.cause))

    def _reply(self, message: ChatMessage, text: str) -> None:
        if not self.notifier or not self.reply_in_channel:
            return
        try:
            self.notifier.send(message.channel_id, text)
        except Exception as e:
            logger.warning(f"Failed to send reply to channel {message.channel_id}: {e}")

    def start(self) -> None:
        """Start the worker thread."""
        if self._worker and self._worker.is_alive():
            return
        self._worker = threading.Thread(target=self._run, name='radiobot-dispatcher', daemon=True)
        self._worker.start()
        logger.info(f"Dispatcher started for channel {self.channel_id}")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the worker after the messages already queued are processed."""
        if not self._worker:
            return
        self._queue.put(_STOP)
        self._worker.join(timeout)
        if self._worker.is_alive():
            logger.warning("Dispatcher worker did not stop within timeout")
        else:
            logger.info("Dispatcher stopped")
        self._worker = None

    def wait_idle(self) -> None:
        """Block until every queued message has been processed."""
        self._queue.join()

    @property
    def running(self) -> bool:
        return bool(self._worker and self._worker.is_alive())

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self.handle(item)
            except Exception as e:
                self.stats.increment('unexpected_errors')
                log_error(logger, "Unexpected error while handling message", e, exc_info=True)
            finally:
                self._queue.task_done()
