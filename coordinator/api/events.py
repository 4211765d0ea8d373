"""WebSocket endpoint for event subscribers"""
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import logging
import uuid

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])


@router.websocket("/ws/events")
async def events_endpoint(websocket: WebSocket):
    """Subscribe to events.

    Clients join extra rooms by sending ``{"join": "project:<id>"}`` or
    ``{"join": "devicetype:<id>"}``.
    """
    # WebSocket endpoints can't use Depends(), read the sink off app state
    events = websocket.app.state.services.events
    client_id = uuid.uuid4().hex

    await events.connect(websocket, client_id)
    try:
        while True:
            data = await websocket.receive_json()
            room = data.get("join") if isinstance(data, dict) else None
            if room:
                events.join(client_id, room)
                await websocket.send_json({"joined": room})
            else:
                logger.warning(f"Unknown subscriber message from {client_id}: {data}")
    except WebSocketDisconnect:
        events.disconnect(client_id)
