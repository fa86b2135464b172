"""
ConnectionManager：WebSocket 連線管理 + EventSink 實作

- 每條連線有自己的 asyncio.Queue 與發送 task，事件依序送出
- publish() 可從任何執行緒呼叫（GameClock 的 executor、FastAPI threadpool），
  透過 call_soon_threadsafe 交回 event loop 分派
- 一個玩家可以有多條連線；room 事件只送給 recipients 中玩家的連線
"""
from dataclasses import dataclass, field
from typing import Dict, Optional, Set
import asyncio
import logging
import uuid

from fastapi import WebSocket

from core.events import EventSink, OutboundEvent

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Connection:
    id: str
    websocket: WebSocket
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    player_id: Optional[str] = None
    sender: Optional[asyncio.Task] = None


class ConnectionManager(EventSink):

    def __init__(self):
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connections: Dict[str, Connection] = {}

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> Connection:
        """接受連線並啟動發送 task"""
        await websocket.accept()
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        connection = Connection(id=str(uuid.uuid4()), websocket=websocket)
        connection.sender = asyncio.create_task(self._drain(connection))
        self._connections[connection.id] = connection
        logger.debug(f"Connection {connection.id} accepted ({len(self._connections)} open)")
        return connection

    def bind_player(self, connection: Connection, player_id: str) -> None:
        connection.player_id = player_id
        logger.debug(f"Connection {connection.id} bound to player {player_id}")

    def player_connections(self, player_id: str) -> Set[str]:
        return {c.id for c in self._connections.values() if c.player_id == player_id}

    async def disconnect(self, connection: Connection) -> bool:
        """
        移除連線

        返回：
            True 如果這是該玩家的最後一條連線
        """
        self._connections.pop(connection.id, None)
        if connection.sender:
            connection.sender.cancel()
            try:
                await connection.sender
            except asyncio.CancelledError:
                pass
        logger.debug(f"Connection {connection.id} closed ({len(self._connections)} open)")

        if connection.player_id is None:
            return False
        return not self.player_connections(connection.player_id)

    async def send_personal_message(self, connection: Connection, event: str, data) -> None:
        await connection.queue.put({"event": event, "data": data})

    def publish(self, event: OutboundEvent) -> None:
        if self._loop is None:
            logger.debug(f"Dropping {event.name}: no event loop bound")
            return
        try:
            self._loop.call_soon_threadsafe(self._dispatch, event)
        except RuntimeError:
            # event loop 已關閉（伺服器正在停止）
            logger.debug(f"Dropping {event.name}: event loop closed")

    def _dispatch(self, event: OutboundEvent) -> None:
        message = event.to_message()
        for connection in self._connections.values():
            if event.recipients is None or connection.player_id in event.recipients:
                connection.queue.put_nowait(message)

    async def _drain(self, connection: Connection) -> None:
        while True:
            message = await connection.queue.get()
            try:
                await connection.websocket.send_json(message)
            except Exception as e:
                logger.warning(f"Failed to send {message['event']} to connection {connection.id}: {e}")
                return
