from unittest.mock import Mock

from radiobot.application.dispatcher import (
    EventDispatcher, REPLY_ADDED, REPLY_ALREADY_PRESENT, REPLY_APPEND_FAILED, REPLY_DETECTED,
    REPLY_NO_ID, REPLY_NO_OLDEST, REPLY_READ_FAILED, REPLY_REMOVE_FAILED, REPLY_REMOVED,
)
from radiobot.application.pipeline import MirrorPipeline
from radiobot.crosscutting.metrics import DispatchStats
from radiobot.domain.entities import Append, ChatMessage, TrackRef
from radiobot.domain.errors import TemporaryFailure


CHANNEL = 1234
LINK = "https://open.spotify.com/track/{}?si=xyz"


def message(text, channel_id=CHANNEL, bot=False, message_id=1):
    return ChatMessage(channel_id=channel_id, content=text, author_is_bot=bot,
                       message_id=message_id, author="listener#0001")


class TestEventDispatcher:
    """Tests for synchronous message handling."""

    def setup_method(self):
        self.notifier = Mock()
        self.stats = DispatchStats()

    def _dispatcher(self, service, capacity=2, **kwargs):
        pipeline = MirrorPipeline(service, "pl1", capacity_bound=capacity)
        return EventDispatcher(CHANNEL, pipeline, notifier=self.notifier, stats=self.stats, **kwargs)

    def _replies(self):
        return [c.args[1] for c in self.notifier.send.call_args_list]

    def test_ignores_other_channels(self, make_service):
        service = make_service([])
        result = self._dispatcher(service).handle(message(LINK.format("abc"), channel_id=999))

        assert result is None
        assert service.calls == []
        assert self.notifier.send.call_count == 0
        assert self.stats.get('messages_ignored') == 1

    def test_ignores_bot_messages(self, make_service):
        service = make_service([])
        result = self._dispatcher(service).handle(message(LINK.format("abc"), bot=True))

        assert result is None
        assert service.calls == []

    def test_message_without_link(self, make_service):
        service = make_service([])
        result = self._dispatcher(service).handle(message("good morning"))

        assert result is None
        assert service.calls == []
        assert self._replies() == []
        assert self.stats.get('messages_seen') == 1
        assert self.stats.get('links_detected') == 0

    def test_link_without_id_is_reported(self, make_service):
        service = make_service([])
        result = self._dispatcher(service).handle(message("https://open.spotify.com/track/?si=1"))

        assert result is None
        assert service.calls == []
        assert self._replies() == [REPLY_NO_ID]

    def test_append(self, make_service):
        service = make_service([])
        result = self._dispatcher(service).handle(message(LINK.format("abc")))

        assert result.action == Append(appended=TrackRef(id="abc"))
        assert service.uris == ["spotify:track:abc"]
        assert self._replies() == [REPLY_DETECTED, REPLY_ADDED]
        assert self.notifier.send.call_args_list[0].args[0] == CHANNEL
        assert self.stats.get('appended') == 1

    def test_skip(self, make_service):
        service = make_service(["spotify:track:abc"])
        self._dispatcher(service).handle(message(LINK.format("abc")))

        assert service.mutations() == []
        assert self._replies() == [REPLY_DETECTED, REPLY_ALREADY_PRESENT]
        assert self.stats.get('skipped') == 1

    def test_evict_then_append(self, make_service):
        service = make_service(["spotify:track:old", "spotify:track:mid"])
        self._dispatcher(service).handle(message(LINK.format("new")))

        assert service.uris == ["spotify:track:mid", "spotify:track:new"]
        assert self._replies() == [
            REPLY_DETECTED,
            REPLY_REMOVED.format(name="spotify:track:old"),
            REPLY_ADDED,
        ]
        assert self.stats.get('evicted') == 1
        assert self.stats.get('appended') == 1

    def test_only_first_link_processed(self, make_service):
        service = make_service([])
        self._dispatcher(service, capacity=5).handle(
            message(LINK.format("first") + " " + LINK.format("second")))

        assert service.uris == ["spotify:track:first"]

    def test_read_failure_is_reported_not_raised(self, make_service):
        service = make_service([])
        service.fail_on["read_playlist"] = TemporaryFailure("spotify down")

        result = self._dispatcher(service).handle(message(LINK.format("abc")))

        assert result is None
        assert service.mutations() == []
        assert self._replies() == [REPLY_DETECTED, REPLY_READ_FAILED.format(error="spotify down")]
        assert self.stats.get('read_failures') == 1

    def test_remove_failure_is_reported(self, make_service):
        service = make_service(["spotify:track:a", "spotify:track:b"])
        service.fail_on["remove_track"] = TemporaryFailure("nope")

        result = self._dispatcher(service).handle(message(LINK.format("c")))

        assert result is None
        assert self._replies() == [REPLY_DETECTED, REPLY_REMOVE_FAILED.format(error="nope")]
        assert self.stats.get('mutation_failures') == 1
        assert self.stats.get('evicted') == 0

    def test_append_failure_after_eviction_reports_partial(self, make_service):
        service = make_service(["spotify:track:a", "spotify:track:b"])
        service.fail_on["append_track"] = TemporaryFailure("nope")

        self._dispatcher(service).handle(message(LINK.format("c")))

        assert service.uris == ["spotify:track:b"]
        assert self._replies() == [
            REPLY_DETECTED,
            REPLY_REMOVED.format(name="spotify:track:a"),
            REPLY_APPEND_FAILED.format(error="nope"),
        ]
        assert self.stats.get('evicted') == 1
        assert self.stats.get('appended') == 0

    def test_unremovable_oldest_is_reported(self, make_service):
        service = make_service([None, "spotify:track:b"])

        result = self._dispatcher(service).handle(message(LINK.format("c")))

        assert result is None
        assert service.mutations() == []
        assert self._replies() == [REPLY_DETECTED, REPLY_NO_OLDEST]
        assert self.stats.get('blocked_evictions') == 1
        assert self.stats.get('appended') == 0

    def test_notifier_failure_does_not_stop_processing(self, make_service):
        service = make_service([])
        self.notifier.send.side_effect = RuntimeError("discord down")

        result = self._dispatcher(service).handle(message(LINK.format("abc")))

        assert isinstance(result.action, Append)
        assert service.uris == ["spotify:track:abc"]

    def test_replies_disabled(self, make_service):
        service = make_service([])
        self._dispatcher(service, reply_in_channel=False).handle(message(LINK.format("abc")))

        assert self.notifier.send.call_count == 0
        assert service.uris == ["spotify:track:abc"]

    def test_without_notifier(self, make_service):
        service = make_service([])
        pipeline = MirrorPipeline(service, "pl1", capacity_bound=2)
        dispatcher = EventDispatcher(CHANNEL, pipeline)

        assert isinstance(dispatcher.handle(message(LINK.format("abc"))).action, Append)


class TestDispatcherWorker:
    """Tests for the queue-driven worker."""

    def test_submit_filters_before_queueing(self, make_service):
        pipeline = MirrorPipeline(make_service([]), "pl1", capacity_bound=2)
        dispatcher = EventDispatcher(CHANNEL, pipeline)

        assert dispatcher.submit(message("hi", channel_id=42)) is False
        assert dispatcher.submit(message("hi", bot=True)) is False
        assert dispatcher.submit(message("hi")) is True
        assert dispatcher.stats.get('messages_ignored') == 2

    def test_worker_processes_in_arrival_order(self, make_service):
        service = make_service([])
        pipeline = MirrorPipeline(service, "pl1", capacity_bound=3)
        dispatcher = EventDispatcher(CHANNEL, pipeline)

        dispatcher.start()
        assert dispatcher.running
        try:
            for i in range(6):
                dispatcher.submit(message(LINK.format(f"t{i}"), message_id=i))
            dispatcher.wait_idle()
        finally:
            dispatcher.stop(timeout=5)

        assert not dispatcher.running
        assert service.uris == ["spotify:track:t3", "spotify:track:t4", "spotify:track:t5"]
        assert dispatcher.stats.get('appended') == 6
        assert dispatcher.stats.get('evicted') == 3

    def test_worker_survives_unexpected_errors(self, make_service):
        service = make_service([])
        pipeline = MirrorPipeline(service, "pl1", capacity_bound=3)
        real_mirror = pipeline.mirror
        pipeline.mirror = Mock(side_effect=[RuntimeError("bug"), real_mirror(TrackRef(id="warmup"))])
        dispatcher = EventDispatcher(CHANNEL, pipeline)

        dispatcher.start()
        try:
            dispatcher.submit(message(LINK.format("one")))
            dispatcher.submit(message(LINK.format("two")))
            dispatcher.wait_idle()
        finally:
            dispatcher.stop(timeout=5)

        assert dispatcher.stats.get('unexpected_errors') == 1
        assert pipeline.mirror.call_count == 2

    def test_stop_without_start(self, make_service):
        pipeline = MirrorPipeline(make_service([]), "pl1", capacity_bound=3)
        EventDispatcher(CHANNEL, pipeline).stop()
