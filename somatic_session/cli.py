"""
Command-line interface tools for the somatic session service.
"""

import asyncio
import json
import logging
from collections.abc import Coroutine
from datetime import datetime
from typing import Any

import httpx
import typer
from httpx_sse import ServerSentEvent, aconnect_sse

from .config import (
    ENV_AUTO_DISMISS,
    ENV_PHASE_DURATIONS,
    ENV_SESSION_DURATION,
    SessionConfig,
    parse_durations,
)
from .models import MoodId, Screen, SessionSnapshot

DEFAULT_BASE_URL = "http://localhost:8000"

app = typer.Typer(help="Somatic session CLI tools")

BASE_URL_OPTION = typer.Option(
    DEFAULT_BASE_URL, "--url", "-u", help="Base URL of the session service"
)
DURATION_OPTION = typer.Option(
    ...,
    "--duration",
    "-d",
    envvar=ENV_SESSION_DURATION,
    help="Playable seconds before a session completes",
)
PHASES_OPTION = typer.Option(
    None,
    "--afterglow-phases",
    envvar=ENV_PHASE_DURATIONS,
    help="Comma-separated dwell seconds of the intro and prompt phases",
)
DISMISS_OPTION = typer.Option(
    None,
    "--afterglow-dismiss",
    envvar=ENV_AUTO_DISMISS,
    help="Seconds before the afterglow dismisses itself",
)
LOG_LEVEL_OPTION = typer.Option("info", "--log-level", "-l", help="Logging level")


def main() -> None:
    """Entry point for the somatic-session command."""
    app()


# MARK: - Commands


@app.command()
def serve(
    duration: int = DURATION_OPTION,
    afterglow_phases: str | None = PHASES_OPTION,
    afterglow_dismiss: float | None = DISMISS_OPTION,
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
    debug: bool = typer.Option(False, "--debug", help="Raise on unknown moods"),
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """Run the session service."""
    import uvicorn

    from .controller import SessionFlowController
    from .server import create_app

    _configure_logging(log_level)
    config = _build_config(duration, afterglow_phases, afterglow_dismiss, debug)
    controller = SessionFlowController(config)

    uvicorn.run(
        create_app(controller),
        host=host,
        port=port,
        log_level=log_level.lower(),
    )


@app.command()
def moods(base_url: str = BASE_URL_OPTION) -> None:
    """List the moods offered at check-in."""

    async def _moods() -> None:
        async with httpx.AsyncClient() as client:
            response = await client.get(f"{base_url}/moods")
            response.raise_for_status()
            for mood in response.json()["moods"]:
                print(f"{mood['id']:<8} {mood['label']:<8} {mood['name']}")

    _run_with_error_handling(_moods(), base_url)


@app.command()
def status(
    base_url: str = BASE_URL_OPTION,
    json_output: bool = typer.Option(False, "--json", "-j", help="Output raw JSON"),
) -> None:
    """Show the current session state."""

    async def _status() -> None:
        async with httpx.AsyncClient() as client:
            response = await client.get(f"{base_url}/session")
            response.raise_for_status()
            result = response.json()

            if json_output:
                print(json.dumps(result, indent=2))
                return

            snapshot = SessionSnapshot.model_validate(result["session"])
            print(_format_snapshot(snapshot))

    _run_with_error_handling(_status(), base_url)


@app.command()
def select(
    mood: MoodId = typer.Argument(..., help="The mood to check in with"),
    base_url: str = BASE_URL_OPTION,
) -> None:
    """Check in with a mood and open the player."""
    _send("POST", "/session/mood", base_url, {"mood": mood.value})


@app.command()
def toggle(base_url: str = BASE_URL_OPTION) -> None:
    """Toggle play/pause."""
    _send("POST", "/session/toggle", base_url)


@app.command()
def intensity(
    value: float = typer.Argument(..., help="Intensity percent, 0-100"),
    base_url: str = BASE_URL_OPTION,
) -> None:
    """Set the session intensity."""
    _send("PUT", "/session/intensity", base_url, {"intensity": value})


@app.command()
def skip(base_url: str = BASE_URL_OPTION) -> None:
    """Skip to the afterglow."""
    _send("POST", "/session/skip", base_url)


@app.command()
def dismiss(base_url: str = BASE_URL_OPTION) -> None:
    """Dismiss the afterglow."""
    _send("POST", "/session/dismiss", base_url)


@app.command()
def stream(base_url: str = BASE_URL_OPTION) -> None:
    """Stream session updates in real-time."""

    async def _stream() -> None:
        print(f"Streaming from {base_url}/session/stream... (Ctrl+C to stop)")

        async with httpx.AsyncClient(timeout=None) as client:
            async with aconnect_sse(
                client, "GET", f"{base_url}/session/stream"
            ) as event_source:
                async for sse in event_source.aiter_sse():
                    _handle_sse_event(sse)

    _run_with_error_handling(_stream(), base_url)


@app.command()
def simulate(
    mood: MoodId = typer.Argument(MoodId.HEAVY, help="The mood to check in with"),
    duration: int = DURATION_OPTION,
    afterglow_phases: str | None = PHASES_OPTION,
    afterglow_dismiss: float | None = DISMISS_OPTION,
    intensity: float = typer.Option(50, "--intensity", "-i", help="Session intensity"),
    log_level: str = typer.Option("warning", "--log-level", "-l", help="Logging level"),
) -> None:
    """Run one full session in-process and print every state change."""
    from .controller import SessionFlowController

    _configure_logging(log_level)
    config = _build_config(duration, afterglow_phases, afterglow_dismiss, debug=True)

    async def _simulate() -> None:
        controller = SessionFlowController(config)
        finished = asyncio.Event()
        seen_afterglow = False

        def on_snapshot(snapshot: SessionSnapshot) -> None:
            nonlocal seen_afterglow
            print(_format_snapshot(snapshot))
            if snapshot.screen is Screen.AFTERGLOW:
                seen_afterglow = True
            elif snapshot.screen is Screen.CHECK_IN and seen_afterglow:
                finished.set()

        controller.subscribe(on_snapshot)
        controller.on_mood_select(mood)
        controller.set_intensity(intensity)
        controller.toggle_play()
        try:
            await finished.wait()
        finally:
            controller.close()

    try:
        asyncio.run(_simulate())
    except KeyboardInterrupt:
        print("\nStopped")
        raise typer.Exit(0)


# MARK: - Private Helpers


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_config(
    duration: int,
    afterglow_phases: str | None,
    afterglow_dismiss: float | None,
    debug: bool = False,
) -> SessionConfig:
    try:
        return SessionConfig.from_env(
            {},
            session_duration_seconds=duration,
            afterglow_phase_durations=(
                parse_durations(afterglow_phases) if afterglow_phases else None
            ),
            afterglow_auto_dismiss_seconds=afterglow_dismiss,
            debug=debug,
        )
    except ValueError as e:
        print(f"Error: invalid configuration: {e}")
        raise typer.Exit(2)


def _format_snapshot(snapshot: SessionSnapshot) -> str:
    """Format a snapshot as a single status line."""
    timestamp = datetime.fromtimestamp(snapshot.timestamp).strftime("%H:%M:%S")
    line = f"{timestamp} > {snapshot.screen.value}"

    if snapshot.player is not None and snapshot.screen is Screen.PLAYER:
        player = snapshot.player
        state = "playing" if player.is_playing else "paused"
        line += (
            f" [{player.mood.value}] {state} {player.elapsed_seconds}s"
            f" intensity={player.intensity_percent}%"
        )
        if snapshot.completion_pending:
            line += " (complete)"
    elif snapshot.afterglow_phase is not None:
        line += f" [{snapshot.afterglow_phase.value}]"
    return line


def _send(method: str, path: str, base_url: str, payload: dict | None = None) -> None:
    """Send a UI event and print the resulting session state."""

    async def _request() -> None:
        async with httpx.AsyncClient() as client:
            response = await client.request(method, f"{base_url}{path}", json=payload)
            if response.status_code in (404, 409):
                print(f"Refused: {response.json().get('detail', response.text)}")
                raise typer.Exit(1)
            response.raise_for_status()
            snapshot = SessionSnapshot.model_validate(response.json()["session"])
            print(_format_snapshot(snapshot))

    _run_with_error_handling(_request(), base_url)


def _handle_sse_event(sse: ServerSentEvent) -> None:
    """Handle a single SSE event."""
    try:
        if sse.event == "error":
            error_data = json.loads(sse.data)
            print(f"Server error: {error_data.get('error', 'Unknown error')}")
            return

        snapshot = SessionSnapshot.model_validate_json(sse.data)
        print(_format_snapshot(snapshot))

    except ValueError as e:
        print(f"Warning: Could not parse SSE data: {sse.data} - {e}")


def _run_with_error_handling(coro: Coroutine[Any, Any, Any], base_url: str) -> None:
    """Run an async coroutine with standardized error handling."""
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        print("\nStopped")
        raise typer.Exit(0)
    except typer.Exit:
        raise
    except httpx.ConnectError:
        print(f"Error: Could not connect to {base_url}")
        raise typer.Exit(1)
    except httpx.HTTPStatusError as e:
        print(f"Error: HTTP {e.response.status_code}")
        raise typer.Exit(1)
    except Exception as e:
        error_msg = str(e) if str(e) else f"Unknown error of type {type(e).__name__}"
        print(f"Error: {error_msg}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
