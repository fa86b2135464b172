"""
RoomRegistry：所有房間的擁有者

- 房間在啟動時依設定建立，之後不再新增或刪除
- API handler 透過 FastAPI dependency 取得 registry，不使用全域變數
- 每個房間的狀態只由自己的 RoomEngine 修改
"""
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
import logging
import random

from core.events import EventSink
from core.exceptions import UnknownRoom
from core.room_engine import RoomConfig, RoomEngine, ClaimResult, UnsettledPayout
from services.ledger_service import Account, SettlementLedger

logger = logging.getLogger(__name__)


class RoomRegistry:

    def __init__(
        self,
        configs: Iterable[RoomConfig],
        ledger: SettlementLedger,
        sink: Optional[EventSink] = None,
        payout_ratio: Decimal = Decimal("0.8"),
        rng: Optional[random.Random] = None,
    ):
        self.ledger = ledger
        self._rooms: Dict[str, RoomEngine] = {}
        for config in configs:
            if config.id in self._rooms:
                raise ValueError(f"Duplicate room id {config.id}")
            self._rooms[config.id] = RoomEngine(
                config, ledger, sink=sink, payout_ratio=payout_ratio, rng=rng
            )
        logger.info(f"Registered rooms: {', '.join(self._rooms)}")

    def get(self, room_id: str) -> RoomEngine:
        """
        取得房間

        異常：
            UnknownRoom: 房間不存在
        """
        room = self._rooms.get(room_id)
        if room is None:
            raise UnknownRoom(room_id)
        return room

    def rooms(self) -> List[RoomEngine]:
        return list(self._rooms.values())

    def tick_all(self) -> None:
        """GameClock 的 job：依序推進每個房間"""
        for room in self._rooms.values():
            try:
                room.tick()
            except Exception:
                # 單一房間出錯不影響其他房間的時鐘
                logger.exception(f"Tick failed for room {room.id}")

    def join(self, room_id: str, player_id: str, board_number: int) -> Account:
        return self.get(room_id).join(player_id, board_number)

    def claim(self, room_id: str, player_id: str) -> ClaimResult:
        return self.get(room_id).claim(player_id)

    def leave(self, room_id: str, player_id: str) -> bool:
        return self.get(room_id).leave(player_id)

    def leave_all(self, player_id: str) -> List[str]:
        """
        玩家最後一條連線中斷時呼叫：離開所有 WAITING 中的房間

        返回：
            已退款的房間 ID 列表
        """
        left = []
        for room in self._rooms.values():
            if not room.is_member(player_id):
                continue
            try:
                if room.leave(player_id):
                    left.append(room.id)
            except Exception:
                logger.exception(f"Refund failed for player {player_id} in room {room.id}")
        return left

    def unsettled(self) -> List[UnsettledPayout]:
        return [p for room in self._rooms.values() for p in room.unsettled]
