"""
Snapshot feed for the somatic session service.

This module keeps the latest controller snapshot and streams updates to any
number of subscribers (SSE clients, the visualizer). The controller publishes
synchronously from its timer callbacks, so signaling uses a swapped
asyncio.Event rather than a lock-guarded condition.
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from .models import SessionSnapshot


class SnapshotFeed:
    """
    Latest-value store with real-time streaming.

    Subscribers always get the newest snapshot; if several updates land
    before a subscriber wakes up, it sees only the last one.
    """

    def __init__(self, initial: SessionSnapshot) -> None:
        self._current = initial
        self._update_counter = 0
        self._changed = asyncio.Event()

    @property
    def current(self) -> SessionSnapshot:
        return self._current

    def publish(self, snapshot: SessionSnapshot) -> None:
        """
        Replace the current snapshot and wake every waiting subscriber.

        Must be called from the event loop thread.
        """
        self._current = snapshot
        self._update_counter += 1
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()

    @asynccontextmanager
    async def stream(self) -> AsyncGenerator[AsyncGenerator[SessionSnapshot, None], None]:
        """
        Stream snapshots to a subscriber.

        Yields:
            An async generator producing the current snapshot, then every update
        """

        async def snapshot_generator() -> AsyncGenerator[SessionSnapshot, None]:
            last_seen_counter = self._update_counter
            changed = self._changed
            yield self._current

            try:
                while True:
                    if self._update_counter == last_seen_counter:
                        await changed.wait()
                    last_seen_counter = self._update_counter
                    changed = self._changed
                    yield self._current

            except (asyncio.CancelledError, GeneratorExit):
                # Subscriber went away
                return

        yield snapshot_generator()
