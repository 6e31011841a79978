"""
Room registry and room-scoped broadcast for the chat relay.
Only connections that joined a room receive its events; pairing decisions
are never made here.
"""
import logging
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


class RoomHub:
    """Tracks which connections joined which rooms, in this process."""

    def __init__(self):
        # room_id -> {connection_id: socket}
        self.active_connections: Dict[str, Dict[str, Any]] = {}
        # connection_id -> joined room ids
        self.joined_rooms: Dict[str, Set[str]] = {}

    def join(self, room_id: str, connection_id: str, socket: Any) -> None:
        self.active_connections.setdefault(room_id, {})[connection_id] = socket
        self.joined_rooms.setdefault(connection_id, set()).add(room_id)

    def leave(self, room_id: str, connection_id: str) -> None:
        members = self.active_connections.get(room_id)
        if members is not None:
            members.pop(connection_id, None)
            if not members:
                del self.active_connections[room_id]
        rooms = self.joined_rooms.get(connection_id)
        if rooms is not None:
            rooms.discard(room_id)
            if not rooms:
                del self.joined_rooms[connection_id]

    def rooms_of(self, connection_id: str) -> List[str]:
        return sorted(self.joined_rooms.get(connection_id, ()))

    def members(self, room_id: str) -> List[str]:
        return list(self.active_connections.get(room_id, {}))

    def drop(self, connection_id: str) -> List[str]:
        """Forget a connection entirely. Returns the rooms it had joined."""
        rooms = self.rooms_of(connection_id)
        for room_id in rooms:
            self.leave(room_id, connection_id)
        return rooms

    async def broadcast(self, room_id: str, message: dict, exclude: Optional[str] = None) -> int:
        """
        Send a JSON event to every connection in a room.

        Args:
            room_id: Room to broadcast to
            message: JSON-serializable event
            exclude: Connection id that should not receive it (typically the sender)

        Returns:
            Number of connections the event was delivered to
        """
        delivered = 0
        for connection_id, socket in list(self.active_connections.get(room_id, {}).items()):
            if connection_id == exclude:
                continue
            try:
                await socket.send_json(message)
                delivered += 1
            except Exception as e:
                # Connection closed, remove it
                logger.debug(f"Dropping connection {connection_id} from room {room_id}: {e}")
                self.leave(room_id, connection_id)
        return delivered
