"""
Persistence for Session Hub

Durable JSON snapshots of the session state. Writes are coalesced: every
mutation re-arms a single debounce timer and only the timer firing
serializes the (bounded) state, so a burst of mutations produces one write.
"""

import asyncio
import json
import logging
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

class SnapshotStore:
    """JSON file holding the last persisted session snapshot."""

    def __init__(self, path: str = "stream-state.json"):
        self.path = Path(path)

    def load(self) -> Dict[str, Any]:
        """
        Load the persisted snapshot.

        A missing or corrupt file means "start empty" and is never fatal.
        """
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                logger.warning(f"Ignoring snapshot with unexpected shape: {self.path}")
                return {}
            return data
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load snapshot {self.path}: {e}")
            return {}

    def save(self, payload: Dict[str, Any]) -> None:
        """Write the snapshot atomically (unique temp file + rename)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile('w', encoding='utf-8', dir=self.path.parent,
                                         prefix=self.path.name + ".", suffix=".tmp",
                                         delete=False) as f:
            tmp_path = f.name
            try:
                json.dump(payload, f, separators=(',', ':'))
            except Exception:
                f.close()
                os.unlink(tmp_path)
                raise
        os.replace(tmp_path, self.path)

class PersistenceCoalescer:
    """
    Debounced snapshot writer.

    ``schedule()`` marks the state dirty and (re)starts the debounce timer on
    the running event loop. When the timer fires, the snapshot source is
    read once and written off the loop. Without a running loop the state is
    only marked dirty and written by ``flush()``.
    """

    def __init__(self, store: Optional[SnapshotStore],
                 source: Callable[[], Dict[str, Any]], delay: float = 2.0):
        """
        Initialize the coalescer.

        Args:
            store: Snapshot store (None disables persistence)
            source: Callable returning the payload to persist
            delay: Debounce delay in seconds
        """
        self.store = store
        self.source = source
        self.delay = delay

        self._dirty = False
        self._handle: Optional[asyncio.TimerHandle] = None
        self._pending_writes = set()
        # Saves are serialized and never replace a newer snapshot with an older one
        self._save_lock = threading.Lock()
        self._generation = 0
        self._saved_generation = 0
        self.writes = 0

    @property
    def dirty(self) -> bool:
        return self._dirty

    def schedule(self) -> None:
        """Mark state dirty and restart the debounce timer."""
        if self.store is None:
            return
        self._dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self.delay, self._fire, loop)

    def _fire(self, loop: asyncio.AbstractEventLoop) -> None:
        self._handle = None
        if not self._dirty:
            return
        payload, generation = self._payload()
        self._dirty = False
        task = loop.create_task(self._write(payload, generation))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    def _payload(self) -> Tuple[Dict[str, Any], int]:
        payload = self.source()
        payload["saved_at"] = datetime.now().isoformat()
        self._generation += 1
        return payload, self._generation

    def _save(self, payload: Dict[str, Any], generation: int) -> bool:
        with self._save_lock:
            if generation <= self._saved_generation:
                logger.debug(f"Skipping stale snapshot (generation {generation})")
                return False
            self.store.save(payload)
            self._saved_generation = generation
            self.writes += 1
            return True

    async def _write(self, payload: Dict[str, Any], generation: int) -> None:
        try:
            if await asyncio.to_thread(self._save, payload, generation):
                logger.debug(f"Snapshot saved to {self.store.path}")
        except Exception as e:
            logger.error(f"Failed to save snapshot: {e}")

    def flush(self) -> bool:
        """
        Cancel the pending timer and write immediately if dirty.

        Waits for a save already running on the worker thread; call
        ``drain()`` first when a loop is available.

        Returns:
            True if a write happened
        """
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self.store is None or not self._dirty:
            return False
        try:
            written = self._save(*self._payload())
            self._dirty = False
            return written
        except Exception as e:
            logger.error(f"Failed to flush snapshot: {e}")
            return False

    async def drain(self) -> None:
        """Wait for writes already handed off to the worker thread."""
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)
