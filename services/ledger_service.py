"""
帳本服務：玩家餘額的唯一來源（SettlementLedger）

職責：
1. 登入時建立或查詢玩家（首次登入贈送 starting_bonus）
2. 加入房間時扣除賭注（debit）
3. 贏家派彩、等待中離開的退款、外部儲值（credit）
4. 每次餘額變動寫一筆 LedgerEntry

所有修改都走 @transactional：
餘額以條件式 UPDATE（balance = balance ± amount）在資料庫內原子地修改，
之後以 with_user_lock 讀回新餘額並寫 LedgerEntry，全部在同一個 transaction 內完成。
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Callable
import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import transactional
from models import User, LedgerEntry, LedgerEntryKind
from core.locks import with_user_lock
from core.exceptions import InsufficientFunds, PlayerNotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Account:
    """帳本快照，離開 Session 後仍可安全使用"""
    player_id: str
    display_name: str
    balance: Decimal

    @classmethod
    def from_user(cls, user: User) -> "Account":
        return cls(
            player_id=user.player_id,
            display_name=user.display_name,
            balance=Decimal(user.balance),
        )


def _record(db: Session, user: User, kind: LedgerEntryKind, amount: Decimal,
            room_id: Optional[str] = None) -> None:
    db.add(LedgerEntry(
        user_id=user.id,
        kind=kind,
        room_id=room_id,
        amount=amount,
        balance_after=user.balance,
    ))


@transactional
def find_or_create_user(db: Session, player_id: str, starting_bonus: Decimal,
                        first_name: Optional[str] = None,
                        username: Optional[str] = None) -> Account:
    """
    查詢玩家，不存在時建立（含首次登入獎勵）

    參數：
        db: SQLAlchemy Session
        player_id: 玩家識別
        starting_bonus: 新玩家的起始餘額
        first_name / username: 顯示用資料，每次登入都會更新

    返回：
        Account
    """
    user = with_user_lock(player_id, db).first()
    if user is None:
        user = User(
            player_id=player_id,
            first_name=first_name,
            username=username,
            balance=Decimal(starting_bonus),
        )
        db.add(user)
        db.flush()  # 取得 user.id
        _record(db, user, LedgerEntryKind.BONUS, Decimal(starting_bonus))
        logger.info(f"Created player {player_id} with starting bonus {starting_bonus}")
    else:
        if first_name:
            user.first_name = first_name
        if username:
            user.username = username

    return Account.from_user(user)


def get_account(db: Session, player_id: str) -> Account:
    user = db.query(User).filter(User.player_id == player_id).first()
    if not user:
        raise PlayerNotFound(player_id)
    return Account.from_user(user)


@transactional
def debit(db: Session, player_id: str, amount: Decimal,
          kind: LedgerEntryKind = LedgerEntryKind.STAKE,
          room_id: Optional[str] = None) -> Account:
    """
    扣款

    異常：
        PlayerNotFound: 玩家不存在
        InsufficientFunds: 餘額不足（不做任何修改）
    """
    amount = Decimal(amount)

    # 1. 餘額足夠才扣款，檢查與扣款在同一條 UPDATE 內
    result = db.execute(
        update(User)
        .where(User.player_id == player_id, User.balance >= amount)
        .values(balance=User.balance - amount)
        .execution_options(synchronize_session=False)
    )

    # 2. 讀回新餘額；沒有更新到任何一列時分辨原因
    user = with_user_lock(player_id, db).first()
    if not user:
        raise PlayerNotFound(player_id)
    if result.rowcount == 0:
        raise InsufficientFunds(player_id, Decimal(user.balance), amount)

    _record(db, user, kind, -amount, room_id)
    return Account.from_user(user)


@transactional
def credit(db: Session, player_id: str, amount: Decimal,
           kind: LedgerEntryKind = LedgerEntryKind.PAYOUT,
           room_id: Optional[str] = None) -> Account:
    """
    入帳

    異常：
        PlayerNotFound: 玩家不存在
        ValueError: 金額為負數
    """
    if amount < 0:
        raise ValueError(f"credit amount must be >= 0, got {amount}")

    amount = Decimal(amount)
    result = db.execute(
        update(User)
        .where(User.player_id == player_id)
        .values(balance=User.balance + amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise PlayerNotFound(player_id)

    user = with_user_lock(player_id, db).first()
    _record(db, user, kind, amount, room_id)
    return Account.from_user(user)


class SettlementLedger:
    """
    RoomEngine 使用的帳本介面

    每次呼叫開一個新的 Session，呼叫結束就關閉，
    因此可以安全地從 GameClock 與 threadpool 的任一執行緒呼叫。
    """

    def __init__(self, session_factory: Callable[[], Session], starting_bonus: Decimal = Decimal("50")):
        self._session_factory = session_factory
        self.starting_bonus = Decimal(starting_bonus)

    def _run(self, func, *args, **kwargs):
        db = self._session_factory()
        try:
            return func(db, *args, **kwargs)
        finally:
            db.close()

    def find_or_create_user(self, player_id: str, first_name: Optional[str] = None,
                            username: Optional[str] = None) -> Account:
        try:
            return self._run(find_or_create_user, player_id, self.starting_bonus,
                             first_name=first_name, username=username)
        except IntegrityError:
            # 同一個新玩家的另一個登入請求先建立了帳號，重新查詢即可
            logger.info(f"Player {player_id} was created concurrently, reloading")
            return self._run(find_or_create_user, player_id, self.starting_bonus,
                             first_name=first_name, username=username)

    def get_account(self, player_id: str) -> Account:
        return self._run(get_account, player_id)

    def debit(self, player_id: str, amount: Decimal, room_id: Optional[str] = None) -> Account:
        return self._run(debit, player_id, amount, kind=LedgerEntryKind.STAKE, room_id=room_id)

    def credit(self, player_id: str, amount: Decimal, room_id: Optional[str] = None,
               kind: LedgerEntryKind = LedgerEntryKind.PAYOUT) -> Account:
        return self._run(credit, player_id, amount, kind=kind, room_id=room_id)

    def deposit(self, player_id: str, amount: Decimal) -> Account:
        if amount <= 0:
            raise ValueError(f"deposit amount must be > 0, got {amount}")
        account = self._run(credit, player_id, amount, kind=LedgerEntryKind.DEPOSIT)
        logger.info(f"Deposited {amount} to player {player_id}, balance {account.balance}")
        return account
