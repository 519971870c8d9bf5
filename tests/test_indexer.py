"""
Tests for indexer.py - epochs, history replay and the run loop.
"""

import threading

import pytest

from glass.api.errors import ContentServerError
from glass.database import Scene, SceneContent, Tile, session_scope
from glass.indexer import INDEX_ERROR, ContentIndexer, EpochInterrupted, JobFailed
from glass.indexes import INDEXED, Index, SceneIndex
from glass.storage import count_rows
from glass.workers import Job


class RecordingIndex(Index):
    """Index that only remembers which entities it was asked about."""

    name = "RecordingIndex"

    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def run(self, ctx, indexer, entity_type, entity_id):
        with self._lock:
            self.calls.append((entity_type, entity_id))
        return INDEXED


class BrokenIndex(Index):
    name = "BrokenIndex"

    def run(self, ctx, indexer, entity_type, entity_id):
        raise RuntimeError("broken")


def _history(n):
    return [("scene", f"scene-{i}") for i in range(n)]


class TestHistoryReplay:
    """Test pagination and dispatch."""

    @pytest.mark.parametrize(
        "entries,page_size",
        [(0, 1), (0, 5), (1, 1), (7, 1), (7, 3), (7, 7), (7, 50)],
    )
    def test_dispatches_every_entry(self, entries, page_size, make_client, session_factory, quiet_logger):
        """N entries in pages of L: exactly N jobs, whatever L is."""
        client = make_client(history=_history(entries))
        index = RecordingIndex()
        indexer = ContentIndexer(
            client, session_factory, [index], 3, 60, history_page_size=page_size, logger=quiet_logger
        )

        summary = indexer.run_epoch()

        assert summary["dispatched"] == entries
        assert sorted(index.calls) == sorted(_history(entries))
        assert [p.offset for p in client.history_calls] == list(range(0, max(entries, 1), page_size))

    def test_server_name_filter_is_sent(self, make_client, session_factory, quiet_logger):
        client = make_client(history=_history(2))
        indexer = ContentIndexer(
            client, session_factory, [RecordingIndex()], 1, 60, server_name="peer-1", logger=quiet_logger
        )

        indexer.run_epoch()

        assert client.history_calls[0].server_name == "peer-1"
        assert client.history_calls[0].to_query() == {"serverName": "peer-1"}

    def test_history_failure_aborts_epoch_after_drain(self, make_client, session_factory, quiet_logger, monkeypatch):
        """Jobs from earlier pages finish; tiles are not projected."""
        client = make_client(history=_history(5), fail_on_page=2)
        index = RecordingIndex()
        indexer = ContentIndexer(
            client, session_factory, [index], 2, 60, history_page_size=2, logger=quiet_logger
        )
        projected = []
        monkeypatch.setattr("glass.indexer.index_tiles", lambda *a, **kw: projected.append(a))

        with pytest.raises(ContentServerError):
            indexer.run_epoch()

        assert len(index.calls) == 2
        assert projected == []
        assert indexer.state == ContentIndexer.IDLE

    def test_stop_event_interrupts_between_pages(self, make_client, session_factory, quiet_logger):
        client = make_client(history=_history(5))
        stop_event = threading.Event()
        stop_event.set()
        indexer = ContentIndexer(client, session_factory, [RecordingIndex()], 2, 60, logger=quiet_logger)

        with pytest.raises(EpochInterrupted):
            indexer.run_epoch(stop_event)

        assert client.history_calls == []


class TestEpoch:
    """Test full epochs with the scene index."""

    def test_epoch_indexes_scenes_and_tiles(self, make_client, make_scene, session_factory, quiet_logger):
        scenes = {
            "a": make_scene("a", timestamp_ms=1_000_000, pointers=["1,1", "2,2"]),
            "b": make_scene("b", timestamp_ms=2_000_000, pointers=["2,2", "bad"]),
        }
        client = make_client(history=[("scene", "a"), ("profile", "p"), ("scene", "b")], scenes=scenes)
        indexer = ContentIndexer(client, session_factory, [SceneIndex()], 2, 60, logger=quiet_logger)

        summary = indexer.run_epoch()

        assert summary["dispatched"] == 3
        assert summary["failed"] == 0
        assert summary["tiles"] == {"scenes": 2, "tiles": 3, "invalid_pointers": 1, "failed": 0}
        with session_scope(session_factory) as session:
            assert count_rows(session, Scene) == 2
            assert session.get(Tile, (1, 1)).scene_id == "a"
            assert session.get(Tile, (2, 2)).scene_id == "b"

    def test_same_entity_across_two_epochs_stored_once(self, make_client, make_scene, session_factory, quiet_logger):
        """Idempotence: one scene row, one set of content rows, one fetch."""
        client = make_client(history=[("scene", "a")], scenes={"a": make_scene("a")})
        indexer = ContentIndexer(client, session_factory, [SceneIndex()], 2, 60, logger=quiet_logger)

        indexer.run_epoch()
        indexer.run_epoch()

        assert client.entity_calls == ["a"]
        with session_scope(session_factory) as session:
            assert count_rows(session, Scene) == 1
            assert count_rows(session, SceneContent) == 2
        metrics = quiet_logger.get_metrics()
        assert metrics["entities_indexed"] == 1
        assert metrics["entities_skipped"] == 1

    def test_missing_entity_fails_only_its_job(self, make_client, make_scene, session_factory, quiet_logger):
        client = make_client(
            history=[("scene", "ghost"), ("scene", "a")], scenes={"a": make_scene("a")}
        )
        indexer = ContentIndexer(client, session_factory, [SceneIndex()], 1, 60, logger=quiet_logger)

        summary = indexer.run_epoch()

        assert summary["dispatched"] == 2
        assert summary["failed"] == 1
        with session_scope(session_factory) as session:
            assert count_rows(session, Scene) == 1
        metrics = quiet_logger.get_metrics()
        assert metrics["entities_failed"] == 1
        assert metrics["errors_by_type"] == {"EntityNotFoundError": 1}

    def test_failing_index_does_not_block_others(self, make_client, session_factory, quiet_logger):
        recording = RecordingIndex()
        indexer = ContentIndexer(
            make_client(), session_factory, [BrokenIndex(), recording], 1, 60, logger=quiet_logger
        )

        outcomes = indexer.index_entity(quiet_logger.bind(), Job("scene", "x"))

        assert outcomes == {"BrokenIndex": INDEX_ERROR, "RecordingIndex": INDEXED}
        assert recording.calls == [("scene", "x")]

    def test_job_with_failing_index_counts_as_failed(self, make_client, session_factory, quiet_logger):
        """Every index still runs, but the job is reported as failed."""
        recording = RecordingIndex()
        client = make_client(history=_history(3))
        indexer = ContentIndexer(
            client, session_factory, [BrokenIndex(), recording], 2, 60, logger=quiet_logger
        )

        summary = indexer.run_epoch()

        assert summary["dispatched"] == 3
        assert summary["failed"] == 3
        assert sorted(recording.calls) == sorted(_history(3))

    def test_handle_job_raises_only_on_error(self, make_client, session_factory, quiet_logger):
        ok = ContentIndexer(make_client(), session_factory, [RecordingIndex()], 1, 60, logger=quiet_logger)
        broken = ContentIndexer(make_client(), session_factory, [BrokenIndex()], 1, 60, logger=quiet_logger)

        ok._handle_job(quiet_logger.bind(), Job("scene", "x"))
        with pytest.raises(JobFailed, match="BrokenIndex"):
            broken._handle_job(quiet_logger.bind(), Job("scene", "x"))

    def test_invalid_settings(self, make_client, session_factory, quiet_logger):
        with pytest.raises(ValueError):
            ContentIndexer(make_client(), session_factory, [], 0, 60, logger=quiet_logger)
        with pytest.raises(ValueError):
            ContentIndexer(make_client(), session_factory, [], 1, 0, logger=quiet_logger)


class TestRunLoop:
    """Test scheduling and cancellation."""

    def test_stop_while_sleeping(self, make_client, session_factory, quiet_logger):
        """After the first epoch the loop sleeps; stopping wakes it at once."""
        client = make_client(history=_history(1))
        index = RecordingIndex()
        indexer = ContentIndexer(client, session_factory, [index], 1, 3600, logger=quiet_logger)
        stop_event = threading.Event()

        loop = threading.Thread(target=indexer.run, args=(stop_event,))
        loop.start()
        for _ in range(100):
            if quiet_logger.get_metrics()["epochs_completed"] == 1:
                break
            stop_event.wait(0.05)
        stop_event.set()
        loop.join(5)

        assert not loop.is_alive()
        assert indexer.state == ContentIndexer.CANCELLED
        assert len(client.history_calls) == 1
        assert index.calls == [("scene", "scene-0")]

    def test_failed_epoch_is_retried_next_interval(self, make_client, session_factory, quiet_logger):
        stop_event = threading.Event()

        class FlakyClient(make_client):
            """Times out on the first epoch, stops the loop on the second."""

            def get_history(self, params=None):
                if not self.history_calls:
                    self.history_calls.append(params)
                    raise ContentServerError("Content server request timed out: /history")
                stop_event.set()
                return super().get_history(params)

        client = FlakyClient()
        indexer = ContentIndexer(client, session_factory, [RecordingIndex()], 1, 1, logger=quiet_logger)

        indexer.run(stop_event)

        metrics = quiet_logger.get_metrics()
        assert metrics["epochs_failed"] == 1
        assert metrics["epochs_completed"] == 1
        assert len(client.history_calls) == 2

    def test_already_stopped_runs_nothing(self, make_client, session_factory, quiet_logger):
        client = make_client(history=_history(3))
        stop_event = threading.Event()
        stop_event.set()
        indexer = ContentIndexer(client, session_factory, [RecordingIndex()], 1, 60, logger=quiet_logger)

        indexer.run(stop_event)

        assert client.history_calls == []
        assert indexer.state == ContentIndexer.CANCELLED
