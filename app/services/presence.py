# app/services/presence.py
"""在線使用者的 WebSocket 連線登記表（單一行程內）"""
import logging
from collections import defaultdict
from typing import Any, DefaultDict, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    def __init__(self) -> None:
        self._connections: DefaultDict[str, Set[WebSocket]] = defaultdict(set)

    async def connect(self, user_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections[user_id].add(websocket)
        logger.info("User %s connected (%s open sockets)", user_id, len(self._connections[user_id]))

    def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        connections = self._connections.get(user_id)
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            self._connections.pop(user_id, None)

    def is_online(self, user_id: str) -> bool:
        return bool(self._connections.get(user_id))

    async def emit(self, user_id: str, event: str, payload: Any) -> None:
        """送給該使用者所有連線；送不出去的連線直接移除"""
        for connection in list(self._connections.get(user_id, set())):
            try:
                await connection.send_json({"type": event, "data": payload})
            except Exception as exc:
                logger.warning("Dropping socket of user %s after send failure: %r", user_id, exc)
                self.disconnect(user_id, connection)
