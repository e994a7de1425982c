from __future__ import annotations

from fastapi import APIRouter, WebSocket

router = APIRouter(tags=["websocket"])


@router.websocket("/ws/chat")
async def ws_chat(websocket: WebSocket) -> None:
    """Real-time endpoint. The first frame must be an ``authenticate`` event."""
    await websocket.app.state.hub.connections.serve(websocket)
