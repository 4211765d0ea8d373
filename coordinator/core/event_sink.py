"""Outbound event delivery to WebSocket subscribers and Redis channels"""
import logging
from typing import Any, Dict, List, Optional, Protocol, Set

from fastapi import WebSocket

from coordinator.db.redis import RedisCache
from shared.enums import EventTopic, TaskStatus
from shared.messages import EventMessage, ProjectUpdated, TaskStatusChanged

logger = logging.getLogger(__name__)

GLOBAL_ROOM = "global"


class EventSink(Protocol):
    """Anything able to publish a topic/payload pair"""

    async def publish(self, topic: EventTopic, payload: Dict[str, Any],
                      rooms: Optional[List[str]] = None) -> None:
        ...


class WebSocketEventSink:
    """Fans events out to WebSocket connections grouped into rooms.

    Every connection is in the global room; clients may additionally join
    rooms such as ``project:<id>`` or ``devicetype:<id>``. When a Redis cache
    is configured each event is mirrored to the ``events:<topic>`` channel.
    """

    def __init__(self, redis: Optional[RedisCache] = None):
        self.redis = redis
        self.connections: Dict[str, WebSocket] = {}
        self.rooms: Dict[str, Set[str]] = {GLOBAL_ROOM: set()}

    async def connect(self, websocket: WebSocket, client_id: str) -> None:
        """Accept a new subscriber connection."""
        await websocket.accept()
        self.connections[client_id] = websocket
        self.rooms[GLOBAL_ROOM].add(client_id)
        logger.info(f"Event subscriber {client_id} connected")

    def disconnect(self, client_id: str) -> None:
        self.connections.pop(client_id, None)
        for members in self.rooms.values():
            members.discard(client_id)
        logger.info(f"Event subscriber {client_id} disconnected")

    def join(self, client_id: str, room: str) -> None:
        self.rooms.setdefault(room, set()).add(client_id)

    async def publish(self, topic: EventTopic, payload: Dict[str, Any],
                      rooms: Optional[List[str]] = None) -> None:
        """Send an event to every subscriber of the given rooms."""
        message = EventMessage(topic=topic, payload=payload)
        data = message.model_dump(mode="json")

        recipients: Set[str] = set()
        for room in rooms or [GLOBAL_ROOM]:
            recipients |= self.rooms.get(room, set())

        disconnected = []
        for client_id in recipients:
            websocket = self.connections.get(client_id)
            if websocket is None:
                continue
            try:
                await websocket.send_json(data)
            except Exception as e:
                logger.error(f"Error sending {topic.value} to subscriber {client_id}: {e}")
                disconnected.append(client_id)

        for client_id in disconnected:
            self.disconnect(client_id)

        if self.redis:
            await self.redis.publish(f"events:{topic.value}",
                                     message.model_dump_json())


async def publish_safely(sink: EventSink,
                         topic: EventTopic,
                         payload: Dict[str, Any],
                         rooms: Optional[List[str]] = None) -> None:
    """Publish without letting a delivery failure reach the state mutation"""
    try:
        await sink.publish(topic, payload, rooms=rooms)
    except Exception as e:
        logger.error(f"Failed to publish {topic.value}: {e}")


def project_room(project_id: str) -> str:
    return f"project:{project_id}"


def device_type_room(device_type_id: str) -> str:
    return f"devicetype:{device_type_id}"


def task_rooms(task) -> List[str]:
    """Rooms interested in a task: everyone, its project and its device type"""
    return [
        GLOBAL_ROOM,
        project_room(task.project_id),
        device_type_room(task.device_type_id)
    ]


async def publish_task_status(sink: EventSink, task,
                              previous_status=None) -> None:
    """Announce a task status change, plus completion when it finished"""
    message = TaskStatusChanged(task_id=task.id,
                                project_id=task.project_id,
                                status=task.status,
                                previous_status=previous_status,
                                device_id=task.device_id,
                                worker_id=task.worker_id,
                                device_type_id=task.device_type_id)
    payload = message.model_dump(mode="json")
    await publish_safely(sink, EventTopic.TASK_STATUS_CHANGED, payload,
                         task_rooms(task))
    if task.status == TaskStatus.COMPLETED:
        await publish_safely(sink, EventTopic.TASK_COMPLETED, payload,
                             task_rooms(task))


async def publish_project_updated(sink: EventSink, project) -> None:
    message = ProjectUpdated(project_id=project.id,
                             status=project.status.value,
                             progress=project.progress,
                             produced_quantity=project.produced_quantity,
                             target_quantity=project.target_quantity)
    await publish_safely(sink, EventTopic.PROJECT_UPDATED,
                         message.model_dump(mode="json"),
                         [GLOBAL_ROOM, project_room(project.id)])
