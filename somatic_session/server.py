"""
FastAPI server for the somatic session controller.

This module binds one SessionFlowController to HTTP: the UI posts its events
(mood selection, play toggle, intensity, skip, dismiss) and reads session
snapshots, either on demand or as a Server-Sent Events stream.
"""

import asyncio
import json
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from . import __version__
from .catalog import list_moods, lookup
from .controller import SessionFlowController
from .errors import UnknownMoodError
from .models import MoodStyle, SessionSnapshot
from .store import SnapshotFeed

logger = logging.getLogger(__name__)


# API Request/Response Schemas
class MoodSelection(BaseModel):
    """Payload for check-in mood selection."""

    mood: str = Field(..., description="Identifier of the selected mood")


class IntensityUpdate(BaseModel):
    """Payload for intensity changes."""

    intensity: float = Field(
        ..., allow_inf_nan=False, description="New intensity, clamped to 0..100"
    )


class SessionResponse(BaseModel):
    """Response model for session endpoints."""

    session: SessionSnapshot = Field(..., description="The current session state")


class MoodListResponse(BaseModel):
    moods: list[MoodStyle]


def format_sse(snapshot: SessionSnapshot) -> str:
    """Format a snapshot as a Server-Sent Event."""
    return f"data: {snapshot.model_dump_json()}\n\n"


def create_app(controller: SessionFlowController) -> FastAPI:
    """
    Create a FastAPI application bound to the given controller.

    Args:
        controller: The SessionFlowController driven by this app

    Returns:
        Configured FastAPI application
    """
    feed = SnapshotFeed(controller.snapshot())
    unsubscribe = controller.subscribe(feed.publish)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Lifespan context manager for FastAPI application."""
        yield
        # Shutdown - no timer may fire into a stopped loop
        unsubscribe()
        controller.close()

    app = FastAPI(
        title="Somatic Session",
        description="Session flow controller with HTTP and SSE bindings",
        version=__version__,
        lifespan=lifespan,
    )

    def session_response() -> SessionResponse:
        return SessionResponse(session=controller.snapshot())

    def refused(action: str) -> HTTPException:
        return HTTPException(
            status_code=409,
            detail=f"Cannot {action} on the {controller.screen.value} screen",
        )

    @app.get("/")
    async def root() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "somatic-session"}

    @app.get("/moods")
    async def get_moods() -> MoodListResponse:
        """List the moods offered at check-in."""
        return MoodListResponse(moods=list_moods(controller.catalog))

    @app.get("/session")
    async def get_session() -> SessionResponse:
        """Get the current session snapshot."""
        return session_response()

    @app.post("/session/mood")
    async def select_mood(selection: MoodSelection) -> SessionResponse:
        """
        Select a mood on the check-in screen and enter the player.

        Returns:
            The new session snapshot
        """
        try:
            lookup(selection.mood, controller.catalog)
        except UnknownMoodError as e:
            raise HTTPException(status_code=404, detail=str(e))

        if not controller.on_mood_select(selection.mood):
            raise refused("select a mood")
        return session_response()

    @app.post("/session/toggle")
    async def toggle_play() -> SessionResponse:
        """Toggle play/pause on the player screen."""
        if not controller.toggle_play():
            raise refused("toggle play")
        return session_response()

    @app.put("/session/intensity")
    async def set_intensity(update: IntensityUpdate) -> SessionResponse:
        """Set the session intensity."""
        if controller.set_intensity(update.intensity) is None:
            raise refused("change intensity")
        return session_response()

    @app.post("/session/skip")
    async def skip() -> SessionResponse:
        """Skip the rest of the session and go to the afterglow."""
        if not controller.skip():
            raise refused("skip")
        return session_response()

    @app.post("/session/dismiss")
    async def dismiss() -> SessionResponse:
        """Dismiss the afterglow, as a tap would."""
        if not controller.tap():
            raise refused("dismiss")
        return session_response()

    @app.get("/session/stream")
    async def stream_session() -> StreamingResponse:
        """
        Stream session snapshots via Server-Sent Events.

        The current snapshot is sent immediately upon connection, then one
        event per state change.

        Returns:
            StreamingResponse with text/event-stream content type
        """

        async def event_generator() -> AsyncGenerator[str, None]:
            """Generate SSE events for session updates."""
            try:
                async with feed.stream() as snapshots:
                    async for snapshot in snapshots:
                        yield format_sse(snapshot)
            except asyncio.CancelledError:
                # Client disconnected
                pass
            except Exception as e:
                logger.exception("Session stream failed")
                error_data = json.dumps({"error": str(e)})
                yield f"event: error\ndata: {error_data}\n\n"

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "Access-Control-Allow-Origin": "*",
                "Access-Control-Allow-Headers": "*",
            },
        )

    app.state.controller = controller
    app.state.feed = feed
    return app
