"""CanvasKit - Voice tutor drawing on a shared canvas with OpenAI Realtime.

Talk to the agent through your system microphone; it answers through your
speakers and draws on the canvas server via its tool gateway.  Canvas
edits you make yourself are sent to the agent as a new user turn.

Requirements:
    pip install canvaskit[local-audio]
    A backend serving the credential, session and tool endpoints, and a
    canvas server (REST + websocket) on CANVAS_URL / CANVAS_WS_URL.

Run with:
    uv run python examples/canvas_session_openai.py

Environment variables:
    BACKEND_URL     Backend base URL (default: http://localhost:3000)
    CANVAS_URL      Canvas server REST base (default: http://localhost:3000)
    CANVAS_WS_URL   Canvas server websocket (default: ws://localhost:3000)
    TOPIC           Lesson topic (default: photosynthesis)
    OPENAI_MODEL    Realtime model (default: gpt-realtime-mini)
    OPENAI_VOICE    Voice preset (default: alloy)
    KICKOFF         First user turn sent on activation
                    (default: "Hi! Please start the lesson.")

Type a line and press Enter to send it as a text turn; "clear" clears
the canvas, "topic <name>" restarts on a new topic.  Ctrl+C to stop.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys

from canvaskit import (
    BackendClient,
    BackendConfig,
    CanvasEchoSuppressor,
    CanvasServerConfig,
    CanvasSession,
    CanvasSyncClient,
    HTTPToolGateway,
    InMemoryDrawingSurface,
    OpenAIRealtimeConfig,
    SessionConfig,
    SessionStatus,
    WebRTCNegotiator,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-30s %(levelname)-7s %(message)s",
)
logger = logging.getLogger("canvas_session_openai")


async def read_commands(session: CanvasSession, stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    while not stop.is_set():
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            return
        text = line.strip()
        if not text:
            continue
        if text == "clear":
            await session.clear_canvas()
        elif text.startswith("topic "):
            await session.restart(text.removeprefix("topic ").strip())
        else:
            await session.send_text(text)


async def main() -> None:
    backend_url = os.environ.get("BACKEND_URL", "http://localhost:3000")
    backend_config = BackendConfig(
        credential_url=f"{backend_url}/api/realtime/token",
        catalogue_url=f"{backend_url}/api/realtime/session",
        gateway_url=f"{backend_url}/api/realtime/tool",
    )
    realtime_config = OpenAIRealtimeConfig(
        model=os.environ.get("OPENAI_MODEL", "gpt-realtime-mini"),
        voice=os.environ.get("OPENAI_VOICE", "alloy"),
    )
    session_config = SessionConfig(
        kickoff_text=os.environ.get("KICKOFF", "Hi! Please start the lesson."),
    )

    # --- Canvas: local surface mirrored from the canvas server ---
    surface = InMemoryDrawingSurface()
    suppressor = CanvasEchoSuppressor(surface, session_config.echo)
    canvas_sync = CanvasSyncClient(
        CanvasServerConfig(
            base_url=os.environ.get("CANVAS_URL", "http://localhost:3000"),
            ws_url=os.environ.get("CANVAS_WS_URL", "ws://localhost:3000"),
        ),
        surface,
        suppressor,
    )

    session = CanvasSession(
        backend=BackendClient(backend_config),
        negotiator=WebRTCNegotiator(realtime_config),
        gateway=HTTPToolGateway(backend_config.gateway_url),
        surface=surface,
        suppressor=suppressor,
        canvas_sync=canvas_sync,
        config=session_config,
        realtime_config=realtime_config,
    )

    def on_status(status: SessionStatus) -> None:
        logger.info(
            "state=%s mic=%s listening=%s tool=%s blocked=%s",
            status.state,
            status.microphone_active,
            status.listening,
            status.executing_tool or "-",
            status.playback_blocked,
        )

    session.on_status_change(on_status)

    await canvas_sync.start()
    await session.start(os.environ.get("TOPIC", "photosynthesis"))
    if session.status.playback_blocked:
        await session.enable_playback()

    logger.info("Speak into your microphone! Press Ctrl+C to stop.\n")

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    commands = asyncio.create_task(read_commands(session, stop))
    await stop.wait()
    commands.cancel()

    logger.info("\nStopping...")
    await session.close()
    logger.info("Done.")


if __name__ == "__main__":
    asyncio.run(main())
