import asyncio
import logging
import os
from typing import Callable, Optional

import orjson
from pydantic import ValidationError

from ..config import settings
from ..models import WorkspaceSnapshot
from ..state import WorkspaceSession

logger = logging.getLogger("lumina")


class SnapshotStore:
    """Single-slot snapshot file keyed by the workspace id."""

    def __init__(self, data_dir: str, workspace_id: str) -> None:
        self.data_dir = os.path.abspath(data_dir)
        self.workspace_id = workspace_id

    @property
    def path(self) -> str:
        return os.path.join(self.data_dir, f"{self.workspace_id}.json")

    def write(self, snapshot: WorkspaceSnapshot) -> bool:
        tmp_path = self.path + ".tmp"
        try:
            os.makedirs(self.data_dir, exist_ok=True)
            with open(tmp_path, "wb") as f:
                f.write(orjson.dumps(snapshot.model_dump(mode="json")))
            os.replace(tmp_path, self.path)
            return True
        except OSError:
            logger.exception("snapshot_write_failed")
            return False

    def read(self) -> Optional[WorkspaceSnapshot]:
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "rb") as f:
                payload = orjson.loads(f.read())
            return WorkspaceSnapshot.model_validate(payload)
        except (OSError, orjson.JSONDecodeError, ValidationError):
            logger.warning({"event": "snapshot_unreadable", "path": self.path})
            return None

    def remove(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        except OSError:
            logger.exception("snapshot_remove_failed")


class AutosaveScheduler:
    """Debounces saves: each notify() re-arms one quiet-period timer."""

    def __init__(self, save: Callable[[], None], delay: float) -> None:
        self._save = save
        self.delay = delay
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def notify(self) -> None:
        loop = asyncio.get_running_loop()
        self.cancel()
        self._handle = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._save()


class WorkspacePersistence:
    def __init__(self, session: WorkspaceSession, store: SnapshotStore, delay: float | None = None) -> None:
        self.session = session
        self.store = store
        self.scheduler = AutosaveScheduler(self.save_in_background, settings.autosave_delay if delay is None else delay)
        self._write_task: Optional[asyncio.Task] = None
        session.subscribe(self.scheduler.notify)

    def _take_snapshot(self) -> Optional[WorkspaceSnapshot]:
        if not self.session.slides:
            logger.debug({"event": "autosave_skipped", "reason": "no_slides"})
            return None
        try:
            return self.session.snapshot()
        except ValidationError:
            logger.exception("autosave_snapshot_invalid")
            return None

    def _log_written(self, snapshot: WorkspaceSnapshot) -> None:
        logger.debug({
            "event": "autosave_written",
            "slides": len(snapshot.slides),
            "messages": len(snapshot.messages),
            "saved_at": snapshot.saved_at.isoformat(),
        })

    def save_now(self) -> None:
        snapshot = self._take_snapshot()
        if snapshot is not None and self.store.write(snapshot):
            self._log_written(snapshot)

    def save_in_background(self) -> None:
        """Snapshots on the loop and writes the file from a worker thread."""
        snapshot = self._take_snapshot()
        if snapshot is None:
            return
        previous = self._write_task
        self._write_task = asyncio.get_running_loop().create_task(self._write(snapshot, previous, self.session.generation))

    async def _write(self, snapshot: WorkspaceSnapshot, previous: Optional[asyncio.Task], generation: int) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        if generation != self.session.generation:
            return
        if await asyncio.to_thread(self.store.write, snapshot):
            self._log_written(snapshot)
        if generation == self.session.generation:
            return
        # the session was cleared or resumed while the file was being written
        if self.session.slides:
            self.save_in_background()
        else:
            self.store.remove()

    async def wait_for_writes(self) -> None:
        while self._write_task is not None and not self._write_task.done():
            await asyncio.wait([self._write_task])

    def flush(self) -> None:
        if self.scheduler.pending:
            self.scheduler.cancel()
            self.save_now()

    def resume(self) -> Optional[WorkspaceSnapshot]:
        snapshot = self.store.read()
        if snapshot is None or not snapshot.slides:
            logger.info({"event": "resume_no_session"})
            return None
        self.scheduler.cancel()
        self.session.restore(snapshot)
        logger.info({"event": "resume_done", "slides": len(snapshot.slides), "messages": len(snapshot.messages)})
        return snapshot

    def clear(self) -> None:
        self.scheduler.cancel()
        self.store.remove()
        self.session.reset()
        logger.info({"event": "workspace_cleared", "workspace_id": self.store.workspace_id})
