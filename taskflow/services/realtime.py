import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket


class ConnectionManager:
    """Live WebSocket subscribers grouped by organization."""

    def __init__(self) -> None:
        self._connections: Dict[int, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, organization_id: int) -> None:
        """Accept and add a WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self._connections.setdefault(organization_id, set()).add(websocket)

    async def disconnect(self, websocket: WebSocket, organization_id: int) -> None:
        async with self._lock:
            connections = self._connections.get(organization_id)
            if connections is None:
                return
            connections.discard(websocket)
            if not connections:
                self._connections.pop(organization_id, None)

    def connection_count(self, organization_id: int) -> int:
        return len(self._connections.get(organization_id, ()))

    async def broadcast(self, message: Dict[str, Any], organization_id: int) -> None:
        async with self._lock:
            connections = list(self._connections.get(organization_id, ()))
        for websocket in connections:
            try:
                await websocket.send_json(message)
            except Exception:
                await self.disconnect(websocket, organization_id)


manager = ConnectionManager()


async def broadcast_event(
    resource: str,
    action: str,
    payload: Dict[str, Any],
    *,
    organization_id: Optional[int] = None,
) -> None:
    if organization_id is None:
        organization_id = payload.get("organization_id")
    if organization_id is None:
        return
    await manager.broadcast(
        {
            "resource": resource,
            "action": action,
            "data": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        organization_id,
    )
