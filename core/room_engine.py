"""
RoomEngine：單一房間的狀態機與派彩

職責：
1. tick()：由 GameClock 驅動的倒數、開局、叫號、號碼用盡結束
2. join()：扣除賭注並登記卡片（只在 WAITING）
3. claim()：驗證連線、派彩、宣布贏家（只在 PLAYING，每回合只有第一個成功）
4. leave()：WAITING 時退出並退款；PLAYING 時賭注沒收、卡片繼續有效

狀態轉換（每個 tick）：
┌──────────┬───────────────────────────┬─────────────────────────────────┐
│ 狀態     │ 條件                      │ 結果                            │
├──────────┼───────────────────────────┼─────────────────────────────────┤
│ WAITING  │ timer > 0                 │ timer - 1                       │
│ WAITING  │ timer == 0, 有玩家        │ PLAYING, 清空號碼, game_start   │
│ WAITING  │ timer == 0, 無玩家        │ timer = lobby_duration          │
│ PLAYING  │ timer > 0                 │ timer - 1                       │
│ PLAYING  │ timer == 0, 號碼 < 75     │ 叫一個新號碼, number_called     │
│ PLAYING  │ timer == 0, 號碼 == 75    │ game_over(無贏家), 回到 WAITING │
└──────────┴───────────────────────────┴─────────────────────────────────┘

並發：
- 房間的 status / timer / called_numbers / players 視為一個整體，
  所有操作全程持有 self._lock（包含帳本呼叫），不會看到改到一半的房間
- 兩個同時的 claim 會被序列化：後到的看到 WAITING，得到 InvalidRoomState
- 先驗證、再扣款、最後才修改房間（check-then-act）
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional
import logging
import random
import threading

from models import RoomStatus, LedgerEntryKind
from core.events import (
    EventSink,
    NullSink,
    OutboundEvent,
    to_players,
    LOBBY_UPDATE,
    GAME_START,
    NUMBER_CALLED,
    GAME_OVER,
    PLAYER_COUNT,
    BALANCE_UPDATE,
)
from core.exceptions import (
    InvalidRoomState,
    AlreadyJoined,
    NotAMember,
    NoWin,
    SettlementFailed,
)
from services.board_service import MAX_NUMBER
from services.win_service import WinResult, check_win
from services.payoff_service import calculate_pot
from services.ledger_service import Account, SettlementLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoomConfig:
    id: str
    stake: Decimal
    lobby_duration: int
    draw_interval: int = 4


@dataclass(frozen=True)
class Membership:
    player_id: str
    display_name: str
    board_number: int
    balance_at_join: Decimal


@dataclass(frozen=True)
class ClaimResult:
    win: WinResult
    amount: Decimal
    account: Account


@dataclass(frozen=True)
class UnsettledPayout:
    """派彩入帳失敗的紀錄，需要人工對帳"""
    room_id: str
    player_id: str
    amount: Decimal
    win: WinResult
    error: str
    at: datetime


class RoomEngine:
    """單一房間的擁有者"""

    def __init__(
        self,
        config: RoomConfig,
        ledger: SettlementLedger,
        sink: Optional[EventSink] = None,
        payout_ratio: Decimal = Decimal("0.8"),
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self._ledger = ledger
        self._sink = sink or NullSink()
        self._payout_ratio = Decimal(payout_ratio)
        self._rng = rng or random.SystemRandom()
        self._lock = threading.Lock()

        self._status = RoomStatus.WAITING
        self._timer = config.lobby_duration
        self._called: List[int] = []
        self._players: Dict[str, Membership] = {}
        self.unsettled: List[UnsettledPayout] = []

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def status(self) -> RoomStatus:
        with self._lock:
            return self._status

    @property
    def timer(self) -> int:
        with self._lock:
            return self._timer

    @property
    def called_numbers(self) -> List[int]:
        with self._lock:
            return list(self._called)

    @property
    def player_count(self) -> int:
        with self._lock:
            return len(self._players)

    def is_member(self, player_id: str) -> bool:
        with self._lock:
            return player_id in self._players

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "room_id": self.id,
                "stake": float(self.config.stake),
                "status": self._status.value,
                "timer": self._timer,
                "player_count": len(self._players),
                "called_numbers": list(self._called),
                "lobby_duration": self.config.lobby_duration,
                "draw_interval": self.config.draw_interval,
            }

    # ============ Tick ============

    def tick(self) -> None:
        """推進一個時間單位"""
        with self._lock:
            if self._status == RoomStatus.WAITING:
                self._tick_waiting()
                # 剛轉成 PLAYING 的這一個 tick 也送出，讓大廳看到狀態變化
                self._emit(LOBBY_UPDATE, {
                    "room_id": self.id,
                    "timer": self._timer,
                    "status": self._status.value,
                    "player_count": len(self._players),
                })
            else:
                self._tick_playing()

    def _tick_waiting(self) -> None:
        if self._timer > 0:
            self._timer -= 1
            return

        if not self._players:
            # 沒有玩家就不開局，重新倒數
            self._timer = self.config.lobby_duration
            return

        self._status = RoomStatus.PLAYING
        self._called = []
        self._timer = self.config.draw_interval
        logger.info(f"Room {self.id} started a round with {len(self._players)} players")
        self._emit(GAME_START, {"room_id": self.id}, self._members())

    def _tick_playing(self) -> None:
        if self._timer > 0:
            self._timer -= 1
            return

        if len(self._called) >= MAX_NUMBER:
            logger.info(f"Room {self.id} exhausted all numbers without a winner")
            self._emit(GAME_OVER, {"room_id": self.id, "winner": None}, self._members())
            self._reset_round()
            return

        number = self._draw_number()
        self._called.append(number)
        self._timer = self.config.draw_interval
        logger.debug(f"Room {self.id} called {number} ({len(self._called)}/{MAX_NUMBER})")
        self._emit(NUMBER_CALLED, {"room_id": self.id, "number": number}, self._members())

    def _draw_number(self) -> int:
        called = set(self._called)
        remaining = [n for n in range(1, MAX_NUMBER + 1) if n not in called]
        return self._rng.choice(remaining)

    # ============ Client 操作 ============

    def join(self, player_id: str, board_number: int) -> Account:
        """
        加入本回合

        流程：
        1. 驗證房間狀態（必須 WAITING）與重複加入
        2. 透過帳本扣除賭注（失敗則房間完全不變）
        3. 登記卡片
        4. 推送新餘額給玩家、推送人數給房間

        參數：
            player_id: 玩家識別
            board_number: 玩家選擇的卡片號碼

        返回：
            扣款後的 Account

        異常：
            InvalidRoomState: 房間已在遊戲中
            AlreadyJoined: 本回合已加入
            InsufficientFunds: 餘額不足
            PlayerNotFound: 玩家尚未登入
        """
        with self._lock:
            if self._status != RoomStatus.WAITING:
                raise InvalidRoomState(f"Room {self.id} is not accepting players (status: {self._status.value})")
            if player_id in self._players:
                raise AlreadyJoined(f"Player {player_id} already joined room {self.id}")

            account = self._ledger.debit(player_id, self.config.stake, room_id=self.id)

            self._players[player_id] = Membership(
                player_id=player_id,
                display_name=account.display_name,
                board_number=board_number,
                balance_at_join=account.balance,
            )
            logger.info(
                f"Player {player_id} joined room {self.id} with board {board_number} "
                f"(balance {account.balance}, players {len(self._players)})"
            )

            self._emit(BALANCE_UPDATE, {"balance": float(account.balance)}, to_players([player_id]))
            self._emit(PLAYER_COUNT, {"room_id": self.id, "count": len(self._players)}, self._members())
            return account

    def claim(self, player_id: str) -> ClaimResult:
        """
        宣告 Bingo

        前置條件：
        - 房間狀態必須是 PLAYING
        - 玩家必須在本房間的參與者名單中（以房間名單為準，不信任客戶端）

        流程：
        1. 驗證
        2. 以玩家的卡片號碼與已叫號碼判定連線
        3. 計算彩池並入帳（入帳成功前不宣布贏家）
        4. 宣布 game_over，清空玩家，回到 WAITING

        異常：
            InvalidRoomState: 房間不在 PLAYING（含同回合已有人勝出）
            NotAMember: 玩家不是本回合參與者
            NoWin: 尚未連線
            SettlementFailed: 派彩入帳失敗，本回合作廢
        """
        with self._lock:
            if self._status != RoomStatus.PLAYING:
                raise InvalidRoomState(f"Room {self.id} has no round in progress")
            member = self._players.get(player_id)
            if member is None:
                raise NotAMember(f"Player {player_id} is not playing in room {self.id}")

            win = check_win(member.board_number, self._called)
            if win is None:
                raise NoWin(f"Board {member.board_number} has no winning pattern yet")

            pot = calculate_pot(self.config.stake, len(self._players), self._payout_ratio)
            members = self._members()

            try:
                account = self._ledger.credit(player_id, pot, room_id=self.id)
            except Exception as e:
                self._void_round(member, pot, win, e)
                raise SettlementFailed(
                    f"Payout of {pot} to {player_id} in room {self.id} failed; round voided"
                ) from e

            logger.info(
                f"Player {player_id} won room {self.id} with {win.pattern.value} {win.index}, "
                f"paid {pot} (balance {account.balance})"
            )
            self._emit(GAME_OVER, {
                "room_id": self.id,
                "winner": member.display_name,
                "winner_id": player_id,
                "amount": float(pot),
                "win_info": win.to_dict(),
            }, members)
            self._emit(BALANCE_UPDATE, {"balance": float(account.balance)}, to_players([player_id]))
            self._reset_round()
            return ClaimResult(win=win, amount=pot, account=account)

    def leave(self, player_id: str) -> bool:
        """
        離開房間

        - WAITING：退還賭注並移除（退款成功才移除）
        - PLAYING：不做任何事，賭注留在彩池，玩家重新連線後仍可宣告

        返回：
            True 如果玩家被移除並退款
        """
        with self._lock:
            if player_id not in self._players:
                return False
            if self._status != RoomStatus.WAITING:
                logger.info(f"Player {player_id} left room {self.id} mid-round; stake forfeited")
                return False

            account = self._ledger.credit(
                player_id, self.config.stake, room_id=self.id, kind=LedgerEntryKind.REFUND
            )
            del self._players[player_id]
            logger.info(f"Player {player_id} left room {self.id}, refunded {self.config.stake}")

            self._emit(BALANCE_UPDATE, {"balance": float(account.balance)}, to_players([player_id]))
            self._emit(PLAYER_COUNT, {"room_id": self.id, "count": len(self._players)}, self._members())
            return True

    # ============ 內部工具 ============

    def _void_round(self, member: Membership, pot: Decimal, win: WinResult, error: Exception) -> None:
        logger.error(
            f"Settlement failed for player {member.player_id} in room {self.id} "
            f"(amount {pot}); round voided, manual reconciliation required",
            exc_info=error,
        )
        self.unsettled.append(UnsettledPayout(
            room_id=self.id,
            player_id=member.player_id,
            amount=pot,
            win=win,
            error=str(error),
            at=datetime.now(timezone.utc),
        ))
        self._emit(GAME_OVER, {
            "room_id": self.id,
            "winner": None,
            "settlement_failed": True,
        }, self._members())
        self._reset_round()

    def _reset_round(self) -> None:
        self._players = {}
        self._status = RoomStatus.WAITING
        self._timer = self.config.lobby_duration

    def _members(self):
        return to_players(self._players)

    def _emit(self, name: str, data, recipients=None) -> None:
        self._sink.publish(OutboundEvent(name=name, data=data, room_id=self.id, recipients=recipients))
