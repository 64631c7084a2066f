"""
Tests for the debounced autosave and snapshot lifecycle.
"""

import asyncio
import threading
import time
from pathlib import Path

import pytest

from lumina.services.persistence import AutosaveScheduler, SnapshotStore, WorkspacePersistence
from lumina.state import WorkspaceSession

from conftest import make_new_slides

DELAY = 0.1


@pytest.fixture
def store(data_dir: Path) -> SnapshotStore:
    return SnapshotStore(str(data_dir), "test-workspace")


@pytest.fixture
def session() -> WorkspaceSession:
    return WorkspaceSession()


@pytest.fixture
def persistence(session, store) -> WorkspacePersistence:
    return WorkspacePersistence(session, store, delay=DELAY)


@pytest.fixture
def writes(store, monkeypatch):
    recorded = []
    original = store.write

    def counting_write(snapshot):
        recorded.append(snapshot)
        return original(snapshot)

    monkeypatch.setattr(store, "write", counting_write)
    return recorded


class TestAutosaveScheduler:
    @pytest.mark.asyncio
    async def test_burst_collapses_to_one_call(self):
        calls = []
        scheduler = AutosaveScheduler(lambda: calls.append(time.monotonic()), DELAY)

        for _ in range(5):
            scheduler.notify()
            await asyncio.sleep(0.01)
        last = time.monotonic()
        assert scheduler.pending

        await asyncio.sleep(DELAY * 3)
        assert len(calls) == 1
        assert calls[0] >= last + DELAY - 0.02
        assert not scheduler.pending

    @pytest.mark.asyncio
    async def test_cancel_drops_pending_save(self):
        calls = []
        scheduler = AutosaveScheduler(lambda: calls.append(1), DELAY)

        scheduler.notify()
        scheduler.cancel()
        await asyncio.sleep(DELAY * 2)

        assert calls == []

class TestWorkspacePersistence:
    @pytest.mark.asyncio
    async def test_flush_writes_pending_save_immediately(self, session, store, writes):
        persistence = WorkspacePersistence(session, store, delay=60)

        persistence.flush()
        assert writes == []

        session.add_slides(make_new_slides(1))
        persistence.flush()
        assert len(writes) == 1
        assert not persistence.scheduler.pending

    @pytest.mark.asyncio
    async def test_timed_save_writes_off_the_event_loop(self, session, persistence, store, monkeypatch):
        threads = []
        original = store.write

        def recording_write(snapshot):
            threads.append(threading.get_ident())
            return original(snapshot)

        monkeypatch.setattr(store, "write", recording_write)
        session.add_slides(make_new_slides(2))
        await asyncio.sleep(DELAY * 2)
        await persistence.wait_for_writes()

        assert len(threads) == 1
        assert threads[0] != threading.get_ident()
        assert Path(store.path).exists()

    @pytest.mark.asyncio
    async def test_clear_during_write_leaves_no_file(self, session, persistence, store, monkeypatch):
        entered = threading.Event()
        release = threading.Event()
        original = store.write

        def slow_write(snapshot):
            entered.set()
            release.wait(5)
            return original(snapshot)

        monkeypatch.setattr(store, "write", slow_write)
        session.add_slides(make_new_slides(1))
        persistence.scheduler.cancel()
        persistence.save_in_background()
        await asyncio.to_thread(entered.wait, 5)

        persistence.clear()
        release.set()
        await persistence.wait_for_writes()

        assert not Path(store.path).exists()
        assert persistence.resume() is None

    @pytest.mark.asyncio
    async def test_five_mutations_one_write(self, session, persistence, writes):
        created = session.add_slides(make_new_slides(3))
        await asyncio.sleep(0.01)
        session.add_message("user", "hello")
        await asyncio.sleep(0.01)
        session.navigate(2)
        await asyncio.sleep(0.01)
        session.attach_explanation(created[0].id, "explained")
        await asyncio.sleep(0.01)
        session.add_message("model", "answer")
        last_mutation = time.time()

        await asyncio.sleep(DELAY / 2)
        assert writes == []

        await asyncio.sleep(DELAY * 2)
        assert len(writes) == 1
        snapshot = writes[0]
        assert snapshot.saved_at.timestamp() >= last_mutation + DELAY - 0.02
        assert len(snapshot.slides) == 3
        assert len(snapshot.messages) == 2
        assert snapshot.last_active_index == 2
        assert snapshot.slides[0].explanation == "explained"

    @pytest.mark.asyncio
    async def test_empty_deck_is_not_saved(self, session, persistence, writes, store):
        session.add_message("user", "no slides yet")
        await asyncio.sleep(DELAY * 2)

        assert writes == []
        assert not Path(store.path).exists()

    @pytest.mark.asyncio
    async def test_resume_restores_snapshot(self, session, persistence, store):
        created = session.add_slides(make_new_slides(4))
        session.navigate(3)
        session.add_message("user", "q")
        persistence.flush()

        fresh = WorkspaceSession()
        snapshot = WorkspacePersistence(fresh, store, delay=DELAY).resume()

        assert snapshot is not None
        assert [s.id for s in fresh.slides] == [s.id for s in created]
        assert fresh.active_index == 3
        assert fresh.messages[0].content == "q"
        assert fresh.slides[0].image.raw() == created[0].image.raw()

    def test_resume_without_file(self, session, persistence):
        assert persistence.resume() is None
        assert session.slides == []

    def test_resume_corrupt_file(self, session, persistence, store):
        Path(store.path).write_bytes(b"{not json")

        assert persistence.resume() is None
        assert session.slides == []

    def test_resume_schema_mismatch(self, session, persistence, store):
        Path(store.path).write_bytes(b'{"slides": "nope"}')

        assert persistence.resume() is None

    def test_resume_empty_snapshot(self, session, persistence, store):
        Path(store.path).write_bytes(
            b'{"slides": [], "messages": [], "last_active_index": 0, "saved_at": "2026-01-01T00:00:00Z"}'
        )

        assert persistence.resume() is None

    @pytest.mark.asyncio
    async def test_clear_then_resume(self, session, persistence, store):
        session.add_slides(make_new_slides(2))
        session.add_message("user", "q")
        persistence.flush()
        assert Path(store.path).exists()

        session.add_message("user", "pending edit")
        persistence.clear()

        assert not persistence.scheduler.pending
        assert not Path(store.path).exists()
        assert session.slides == []
        assert session.messages == []
        assert persistence.resume() is None
        assert session.slides == []
        assert session.messages == []

    @pytest.mark.asyncio
    async def test_write_failure_is_swallowed(self, tmp_path, session):
        blocker = tmp_path / "occupied"
        blocker.write_text("a file where the data dir should be")
        persistence = WorkspacePersistence(session, SnapshotStore(str(blocker), "ws"), delay=DELAY)

        session.add_slides(make_new_slides(1))
        persistence.flush()

        assert len(session.slides) == 1

    @pytest.mark.asyncio
    async def test_snapshot_overwritten_wholesale(self, session, persistence, store):
        session.add_slides(make_new_slides(1))
        persistence.flush()
        session.add_slides(make_new_slides(2))
        persistence.flush()

        snapshot = store.read()
        assert len(snapshot.slides) == 3
