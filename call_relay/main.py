import asyncio
import json
import logging
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import Settings
from .handlers import disconnect, dispatch
from .janitor import run_janitor
from .manager import ConnectionManager
from .table import CallTable, normalize_code

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, table: Optional[CallTable] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    if table is None:
        table = CallTable(
            admission=settings.admission,
            creator_leaves=settings.creator_leaves,
            code_length=settings.code_length,
        )
    manager = ConnectionManager()

    app = FastAPI(
        title="Call Relay",
        description="Two-party WebRTC call signaling relay",
        version=__version__,
    )
    app.state.settings = settings
    app.state.calls = table
    app.state.manager = manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # WebSocket endpoint for signaling
    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        endpoint_id = await manager.connect(websocket)
        try:
            await manager.send_personal_message({
                "type": "connection-established",
                "data": {
                    "endpointId": endpoint_id,
                    "timestamp": datetime.now().isoformat(),
                },
            }, endpoint_id)

            while True:
                try:
                    frame = await websocket.receive()
                except WebSocketDisconnect:
                    break
                if frame["type"] == "websocket.disconnect":
                    break

                try:
                    raw = frame.get("text")
                    if raw is None:
                        raise ValueError("binary frame")
                    message = json.loads(raw)
                    if not isinstance(message, dict):
                        raise ValueError("frame is not an object")
                except ValueError as e:
                    logger.warning(f"Bad frame from {endpoint_id}: {e}")
                    await manager.send_personal_message(
                        {"type": "call-error", "data": {"reason": "invalid-message"}}, endpoint_id)
                    continue

                event = message.get("type")
                data = message.get("data")
                if not isinstance(data, dict):
                    data = {}
                try:
                    await manager.deliver(dispatch(event, endpoint_id, data, table))
                except Exception as e:
                    logger.error(f"Error handling {event} from {endpoint_id}: {e}")
        finally:
            manager.disconnect(endpoint_id)
            await manager.deliver(disconnect(endpoint_id, table))

    # REST API endpoints
    @app.get("/")
    async def root():
        return {
            "message": "Call Relay",
            "version": __version__,
            "status": "running",
            "calls": len(table),
        }

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "calls": len(table),
            "connections": len(manager),
        }

    @app.get("/calls")
    async def list_calls():
        """Every live call. Debug only; disabled unless expose_call_list is set."""
        if not settings.expose_call_list:
            raise HTTPException(status_code=404, detail="Not Found")
        calls = []
        for snapshot in table.for_each():
            with table.checkout(snapshot.code) as call:
                if call is not None:
                    calls.append(call.to_dict())
        return {"calls": len(calls), "call_states": calls}

    @app.get("/calls/{code}")
    async def get_call(code: str):
        code = normalize_code(code)
        with table.checkout(code) as call:
            if call is None:
                return {"callCode": code, "exists": False, "participantCount": 0, "status": None}
            return {
                "callCode": call.code,
                "exists": True,
                "participantCount": len(call.members),
                "status": call.status.value,
            }

    # Startup and shutdown events
    @app.on_event("startup")
    async def startup_event():
        logger.info(f"Call Relay starting up ({settings.admission.value} admission, "
                    f"creator leaves -> {settings.creator_leaves.value})")
        app.state.janitor = asyncio.create_task(run_janitor(
            table, manager.deliver, settings.janitor_interval, settings.stale_after))

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Call Relay shutting down...")
        janitor = getattr(app.state, "janitor", None)
        if janitor is not None:
            janitor.cancel()
            try:
                await janitor
            except asyncio.CancelledError:
                pass

    return app


app = create_app()
