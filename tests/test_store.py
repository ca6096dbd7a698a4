"""
Tests for the SnapshotFeed implementation.

These tests verify the latest-value store and its streaming to multiple
subscribers.
"""

import asyncio

from somatic_session.config import SessionConfig
from somatic_session.controller import SessionFlowController
from somatic_session.models import Screen
from somatic_session.scheduler import LoopScheduler, ManualScheduler
from somatic_session.store import SnapshotFeed


class TestSnapshotFeed:
    """Test suite for SnapshotFeed functionality."""

    def setup_method(self):
        """Set up a controller on a virtual clock and a feed bound to it."""
        self.scheduler = ManualScheduler()
        self.controller = SessionFlowController(
            SessionConfig(session_duration_seconds=3), self.scheduler
        )
        self.feed = SnapshotFeed(self.controller.snapshot())
        self.controller.subscribe(self.feed.publish)

    async def test_initial_state(self):
        """Test that a new feed holds the check-in snapshot."""
        assert self.feed.current.screen is Screen.CHECK_IN
        assert self.feed.current.revision == 0

    async def test_publish_replaces_current(self):
        self.controller.on_mood_select("heavy")
        assert self.feed.current.screen is Screen.PLAYER
        assert self.feed.current.mood.value == "heavy"

    async def test_streaming(self):
        """Test that two consumers receive streaming session updates."""
        consumer1_screens = []
        consumer2_screens = []

        async def consume(received):
            async with self.feed.stream() as snapshots:
                async for snapshot in snapshots:
                    received.append(snapshot.screen)
                    if len(received) >= 3:  # check-in + 2 updates
                        break

        task1 = asyncio.create_task(consume(consumer1_screens))
        task2 = asyncio.create_task(consume(consumer2_screens))

        # Let them set up
        await asyncio.sleep(0.01)

        self.controller.on_mood_select("anxious")
        await asyncio.sleep(0.01)
        self.controller.skip()

        try:
            await asyncio.wait_for(asyncio.gather(task1, task2), timeout=2.0)
        except TimeoutError:
            task1.cancel()
            task2.cancel()
            await asyncio.gather(task1, task2, return_exceptions=True)
            assert False, (
                f"Test timed out. Consumer1 got: {consumer1_screens}, "
                f"Consumer2 got: {consumer2_screens}"
            )

        expected = [Screen.CHECK_IN, Screen.PLAYER, Screen.AFTERGLOW]
        assert consumer1_screens == expected
        assert consumer2_screens == expected

    async def test_slow_consumer_sees_latest(self):
        """Test that a burst of updates collapses to the newest snapshot."""
        received = []

        async def consume():
            async with self.feed.stream() as snapshots:
                async for snapshot in snapshots:
                    received.append(snapshot)
                    if len(received) >= 2:
                        break

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.01)

        self.controller.on_mood_select("heavy")
        self.controller.set_intensity(10)
        self.controller.set_intensity(20)

        await asyncio.wait_for(task, timeout=2.0)
        assert received[1].player.intensity_percent == 20


class TestLoopScheduler:
    """The controller on a live event loop, with short real delays."""

    async def test_session_runs_on_event_loop(self):
        config = SessionConfig(
            session_duration_seconds=2,
            tick_interval_seconds=0.01,
            completion_grace_seconds=0.01,
            afterglow_phase_durations=(0.01, 0.01),
            afterglow_auto_dismiss_seconds=0.05,
        )
        controller = SessionFlowController(config, LoopScheduler())
        back_to_check_in = asyncio.Event()
        screens = []

        def on_snapshot(snapshot):
            if not screens or screens[-1] is not snapshot.screen:
                screens.append(snapshot.screen)
            if snapshot.screen is Screen.CHECK_IN:
                back_to_check_in.set()

        controller.subscribe(on_snapshot)
        controller.on_mood_select("chaotic")
        controller.toggle_play()

        try:
            await asyncio.wait_for(back_to_check_in.wait(), timeout=2.0)
        finally:
            controller.close()

        assert screens == [Screen.PLAYER, Screen.AFTERGLOW, Screen.CHECK_IN]
