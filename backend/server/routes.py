"""
Route registration for the camera stream API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire the viewer gateway to the WebSocket lifecycle
- Push status changes to connected viewers
- Pull dependencies from app.state
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from lifecycle.status import StatusSnapshot

from observability.logger import log_event

from session.gateway import GatewayResult, ViewerGateway, parse_scene_phase, status_message

from constants import STATUS_PUSH_QUEUE_MAX


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    def _gateway() -> ViewerGateway:
        return app.state.gateway

    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.get("/stream/status")
    async def stream_status() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return _gateway().current_status()

    @app.post("/stream/start")
    async def stream_start() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        gateway = _gateway()
        gateway.request_start()
        # Let the scheduled sequence publish LOADING before we answer
        await asyncio.sleep(0)
        return gateway.current_status()

    @app.post("/stream/stop")
    async def stream_stop() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        gateway = _gateway()
        gateway.request_stop()
        return gateway.current_status()

    @app.post("/lifecycle/{phase}")
    async def lifecycle_phase(phase: str) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        scene_phase = parse_scene_phase(phase)
        if scene_phase is None:
            raise HTTPException(status_code=400, detail=f"unknown scene phase: {phase}")

        gateway = _gateway()
        gateway.on_scene_phase(scene_phase)
        await asyncio.sleep(0)
        return gateway.current_status()

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        gateway = _gateway()
        outbound: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=STATUS_PUSH_QUEUE_MAX)

        def _on_status(snapshot: StatusSnapshot) -> None:
            _offer(outbound, status_message(snapshot))

        unsubscribe = gateway.manager.status.subscribe(_on_status)
        sender = asyncio.create_task(_send_loop(ws, outbound))
        gateway.on_view_appear()

        try:
            _offer(outbound, gateway.current_status())

            while True:
                msg = await ws.receive()

                if msg["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect()

                if "text" in msg and msg["text"] is not None:
                    result = gateway.on_json_message(msg["text"])
                    _offer_result(outbound, result)

                elif "bytes" in msg:
                    log_event({
                        "event_type": "WS_BINARY_IGNORED",
                        "bytes_len": len(msg["bytes"] or b""),
                    })

        except WebSocketDisconnect:
            gateway.on_view_disappear()

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            gateway.on_view_disappear()

        finally:
            unsubscribe()
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _offer(queue: asyncio.Queue[dict[str, Any]], msg: dict[str, Any]) -> None:
    """
    Enqueue an outbound message without blocking the publisher.

    A slow viewer loses its oldest pending status; the newest always lands.
    """
    if queue.full():
        dropped = queue.get_nowait()
        log_event({
            "event_type": "WS_STATUS_DROPPED",
            "dropped_status": dropped.get("status"),
        })
    queue.put_nowait(msg)


def _offer_result(queue: asyncio.Queue[dict[str, Any]], result: GatewayResult) -> None:
    for msg in result.outbound_json:
        _offer(queue, msg)


async def _send_loop(ws: WebSocket, queue: asyncio.Queue[dict[str, Any]]) -> None:
    """Single writer for the socket."""
    while True:
        msg = await queue.get()
        await ws.send_text(json.dumps(msg))
