"""
End-to-end tests for the session HTTP API.

These tests drive a whole session through the endpoints, with the controller
running on a virtual clock so timer-driven transitions are deterministic.
"""

import asyncio
import contextlib
import json
import socket
import threading
import time

import httpx
import uvicorn
from fastapi.testclient import TestClient
from httpx_sse import aconnect_sse

from somatic_session.config import SessionConfig
from somatic_session.controller import SessionFlowController
from somatic_session.scheduler import ManualScheduler
from somatic_session.server import create_app, format_sse


class TestAPISync:
    """Integration tests covering the complete application flow using HTTP
    synchronous request/response flow."""

    def setup_method(self):
        """Set up a fresh app with a new controller for each test."""
        self.scheduler = ManualScheduler()
        self.controller = SessionFlowController(
            SessionConfig(session_duration_seconds=3), self.scheduler
        )
        self.app = create_app(self.controller)

    def test_health(self):
        with TestClient(self.app) as client:
            response = client.get("/")
            assert response.status_code == 200
            assert response.json()["status"] == "ok"

    def test_moods(self):
        with TestClient(self.app) as client:
            response = client.get("/moods")
            assert response.status_code == 200
            moods = response.json()["moods"]
            assert [m["id"] for m in moods] == ["heavy", "anxious", "chaotic"]
            assert moods[1]["variant"] == "hum"

    def test_complete_workflow(self):
        """Test check-in -> play -> complete -> afterglow -> check-in."""
        with TestClient(self.app) as client:
            # 1. Initial state is check-in
            response = client.get("/session")
            assert response.status_code == 200
            assert response.json()["session"]["screen"] == "check-in"

            # 2. Select a mood
            response = client.post("/session/mood", json={"mood": "heavy"})
            assert response.status_code == 200
            session = response.json()["session"]
            assert session["screen"] == "player"
            assert session["player"] == {
                "mood": "heavy",
                "is_playing": False,
                "intensity_percent": 50,
                "elapsed_seconds": 0,
            }
            assert session["visualizer"]["intensity"] == 0.5
            assert session["visualizer"]["style"]["variant"] == "shake"

            # 3. Adjust intensity and play
            response = client.put("/session/intensity", json={"intensity": 120})
            assert response.status_code == 200
            assert response.json()["session"]["player"]["intensity_percent"] == 100

            response = client.post("/session/toggle")
            assert response.json()["session"]["player"]["is_playing"] is True

            # 4. Run the session to completion
            self.scheduler.advance(3)
            session = client.get("/session").json()["session"]
            assert session["player"]["elapsed_seconds"] == 3
            assert session["player"]["is_playing"] is False
            assert session["completion_pending"] is True

            self.scheduler.advance(1)
            session = client.get("/session").json()["session"]
            assert session["screen"] == "afterglow"
            assert session["afterglow_phase"] == "intro"
            assert session["visualizer"] is None

            # 5. Tap to dismiss
            response = client.post("/session/dismiss")
            assert response.status_code == 200
            session = response.json()["session"]
            assert session["screen"] == "check-in"
            assert session["mood"] is None
            assert session["player"] is None

    def test_non_finite_intensity_rejected(self):
        """Test that Infinity and NaN bodies are rejected, not a server error."""
        with TestClient(self.app) as client:
            client.post("/session/mood", json={"mood": "heavy"})
            for raw in ("Infinity", "-Infinity", "NaN"):
                response = client.put(
                    "/session/intensity",
                    content=f'{{"intensity": {raw}}}',
                    headers={"content-type": "application/json"},
                )
                assert response.status_code == 422, raw

            session = client.get("/session").json()["session"]
            assert session["player"]["intensity_percent"] == 50

    def test_skip(self):
        with TestClient(self.app) as client:
            client.post("/session/mood", json={"mood": "chaotic"})
            response = client.post("/session/skip")
            assert response.status_code == 200
            assert response.json()["session"]["screen"] == "afterglow"

    def test_unknown_mood(self):
        with TestClient(self.app) as client:
            response = client.post("/session/mood", json={"mood": "elated"})
            assert response.status_code == 404
            assert client.get("/session").json()["session"]["screen"] == "check-in"

    def test_refused_transitions(self):
        """Test that events for another screen are answered with 409."""
        with TestClient(self.app) as client:
            assert client.post("/session/toggle").status_code == 409
            assert client.put("/session/intensity", json={"intensity": 10}).status_code == 409
            assert client.post("/session/skip").status_code == 409
            assert client.post("/session/dismiss").status_code == 409

            client.post("/session/mood", json={"mood": "heavy"})
            response = client.post("/session/mood", json={"mood": "anxious"})
            assert response.status_code == 409
            assert "player" in response.json()["detail"]

    def test_shutdown_cancels_timers(self):
        with TestClient(self.app) as client:
            client.post("/session/mood", json={"mood": "heavy"})
            client.post("/session/toggle")
        assert self.scheduler.pending == 0

    def test_format_sse(self):
        event = format_sse(self.controller.snapshot())
        assert event.startswith("data: {")
        assert event.endswith("\n\n")
        assert '"screen":"check-in"' in event


# MARK: - Streaming


class TestAPIStream:
    """Integration tests covering the session flow using SSE."""

    def setup_method(self):
        """Set up a fresh app with a new controller for each test."""
        self.scheduler = ManualScheduler()
        self.controller = SessionFlowController(
            SessionConfig(session_duration_seconds=3), self.scheduler
        )
        self.app = create_app(self.controller)

    async def test_streaming_api(self):
        """Test that a stream consumer sees check-in, then the player."""

        # Start a real HTTP server in a background thread on a free port
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.bind(("127.0.0.1", 0))
        host, port = sock.getsockname()
        sock.close()
        base_url = f"http://{host}:{port}"

        config = uvicorn.Config(
            app=self.app,
            host=host,
            port=port,
            loop="asyncio",
            lifespan="on",
            log_level="warning",
            ws="none",
        )
        server = uvicorn.Server(config)

        def run_server() -> None:
            asyncio.run(server.serve())

        thread = threading.Thread(target=run_server, daemon=True)
        thread.start()

        # Wait for server to be ready
        start = time.time()
        while time.time() - start < 5.0:
            try:
                r = httpx.get(base_url + "/", timeout=0.2)
                if r.status_code == 200:
                    break
            except Exception:
                pass
            time.sleep(0.05)
        else:
            server.should_exit = True
            thread.join(timeout=1.0)
            assert False, "Server did not start in time"

        async with httpx.AsyncClient(
            base_url=base_url, timeout=httpx.Timeout(5.0, read=None)
        ) as client:
            received: list[str] = []
            got_initial = asyncio.Event()

            async def consume() -> None:
                async with aconnect_sse(client, "GET", "/session/stream") as es:
                    assert es.response.status_code == 200
                    content_type = es.response.headers.get("content-type", "")
                    assert content_type.startswith("text/event-stream")
                    assert es.response.headers["cache-control"] == "no-cache"

                    async for sse in es.aiter_sse():
                        if sse.event == "error":
                            assert False, f"SSE error event: {json.loads(sse.data)}"

                        received.append(json.loads(sse.data)["screen"])
                        if len(received) == 1:
                            got_initial.set()
                        if len(received) >= 2:
                            break

            consumer_task = asyncio.create_task(consume())

            try:
                await asyncio.wait_for(got_initial.wait(), timeout=3.0)
                response = await client.post("/session/mood", json={"mood": "heavy"})
                assert response.status_code == 200
                await asyncio.wait_for(consumer_task, timeout=3.0)
            except TimeoutError:
                assert False, f"Streaming test timed out. Received: {received}"
            finally:
                if not consumer_task.done():
                    consumer_task.cancel()
                    with contextlib.suppress(BaseException):
                        await consumer_task
                server.should_exit = True
                thread.join(timeout=2.0)

            assert received == ["check-in", "player"]
