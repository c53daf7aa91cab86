import asyncio
import os
import time
from pathlib import Path

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
import uvicorn

from codesynapse.config import settings
from codesynapse.server.channel import QueueChannel, encode_message
from codesynapse.server.session import WatchSession
from codesynapse.types import ErrorMessage
from codesynapse.utils.logger import app_logger


logger = app_logger.bind(component="api_server")

app = FastAPI(title="CodeSynapse", version="1.0.0")

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# Serve the client build when it exists
client_build_path = Path(settings.client_build_path)
if (client_build_path / "static").is_dir():
    app.mount("/static", StaticFiles(directory=str(client_build_path / "static")), name="static")


class HealthResponse(BaseModel):
    status: str
    timestamp: float


class CwdResponse(BaseModel):
    cwd: str


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check endpoint."""
    return HealthResponse(status="ok", timestamp=time.time() * 1000)


@app.get("/api/cwd", response_model=CwdResponse)
async def get_cwd():
    """Directory the client should offer as the default watch root."""
    return CwdResponse(cwd=os.getcwd())


async def _pump(websocket: WebSocket, channel: QueueChannel):
    """Forward pushed messages to the socket, in order."""
    while True:
        message = await channel.receive()
        try:
            await websocket.send_json(encode_message(message))
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.debug(f"Dropping {message.event}, socket closed: {e}")
            channel.close()
            return


async def _dispatch(session: WatchSession, event: str, data):
    """Run one command in the background, logging what it raises."""
    try:
        await session.handle_command(event, data)
    except Exception:
        logger.exception(f"Command {event} failed")


@app.websocket("/ws")
async def graph_socket(websocket: WebSocket):
    """Push channel for one client.

    Frames are JSON objects ``{"event": name, "data": payload}`` both ways.
    ``watch:start`` runs in the background so that a long initial scan does
    not hold up later commands.
    """
    await websocket.accept()
    logger.info(f"Client connected: {websocket.client}")

    channel = QueueChannel()
    session = WatchSession(channel)
    sender = asyncio.create_task(_pump(websocket, channel))
    background = set()

    try:
        while True:
            try:
                frame = await websocket.receive_json()
            except ValueError:
                await channel.send(ErrorMessage(message="Malformed frame"))
                continue
            if not isinstance(frame, dict):
                await channel.send(ErrorMessage(message="Malformed frame"))
                continue

            event = str(frame.get("event", ""))
            if event == "watch:start":
                task = asyncio.create_task(_dispatch(session, event, frame.get("data")))
                background.add(task)
                task.add_done_callback(background.discard)
            else:
                await session.handle_command(event, frame.get("data"))
    except WebSocketDisconnect:
        logger.info(f"Client disconnected: {websocket.client}")
    finally:
        for task in list(background):
            task.cancel()
        await session.close()
        channel.close()
        sender.cancel()


@app.get("/{full_path:path}")
async def client_app(full_path: str):
    """Catch-all route for the client app (must be after API routes)."""
    index_path = client_build_path / "index.html"
    if index_path.is_file():
        return FileResponse(str(index_path))
    return PlainTextResponse("Client app not built.", status_code=404)


if __name__ == "__main__":
    logger.info("Starting CodeSynapse server")

    uvicorn.run(
        "api_server:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
