"""
對外事件

RoomEngine 不認識任何傳輸層，只把事件交給 EventSink。
recipients 為 None 表示廣播給所有連線；否則只送給這些玩家。
"""
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Optional

LOBBY_UPDATE = "lobby_update"
GAME_START = "game_start"
NUMBER_CALLED = "number_called"
GAME_OVER = "game_over"
PLAYER_COUNT = "player_count"
BALANCE_UPDATE = "balance_update"


@dataclass(frozen=True)
class OutboundEvent:
    name: str
    data: Any
    room_id: Optional[str] = None
    recipients: Optional[FrozenSet[str]] = field(default=None)

    def to_message(self) -> Dict[str, Any]:
        return {"event": self.name, "data": self.data}


def to_players(player_ids: Iterable[str]) -> FrozenSet[str]:
    return frozenset(player_ids)


class EventSink:
    """
    事件出口的介面

    publish() 必須是非阻塞的：RoomEngine 在持有房間鎖時呼叫它。
    """

    def publish(self, event: OutboundEvent) -> None:
        raise NotImplementedError


class NullSink(EventSink):
    def publish(self, event: OutboundEvent) -> None:
        pass
