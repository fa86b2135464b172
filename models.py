"""
資料模型

- RoomStatus / PatternType / LedgerEntryKind：遊戲與帳本使用的 enum
- User：玩家帳本（餘額）
- LedgerEntry：每一筆餘額變動的稽核紀錄
"""
import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from database import Base


class RoomStatus(str, enum.Enum):
    WAITING = "WAITING"
    PLAYING = "PLAYING"


class PatternType(str, enum.Enum):
    ROW = "ROW"
    COL = "COL"
    DIAG = "DIAG"
    CORNER = "CORNER"


class LedgerEntryKind(str, enum.Enum):
    BONUS = "BONUS"
    STAKE = "STAKE"
    PAYOUT = "PAYOUT"
    REFUND = "REFUND"
    DEPOSIT = "DEPOSIT"


def _utcnow():
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    # 外部提供的不透明玩家識別（例如 Telegram id）
    player_id = Column(String(64), unique=True, nullable=False, index=True)
    first_name = Column(String(128), nullable=True)
    username = Column(String(128), nullable=True)
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    entries = relationship("LedgerEntry", back_populates="user", order_by="LedgerEntry.id")

    @property
    def display_name(self) -> str:
        return self.first_name or self.username or self.player_id


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    kind = Column(Enum(LedgerEntryKind), nullable=False)
    room_id = Column(String(32), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    balance_after = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    user = relationship("User", back_populates="entries")
