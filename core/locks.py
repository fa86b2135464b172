"""
並發控制工具

兩層鎖：
1. Room 狀態存在記憶體中，由 RoomEngine 自己的 threading.Lock 保護
   （tick / join / claim / leave 全程持有）
2. 玩家餘額存在資料庫中，以條件式 UPDATE（balance = balance - amount WHERE balance >= amount）
   原子地修改，防止同一玩家同時在兩個房間扣款時超扣；
   之後用 SELECT ... FOR UPDATE 讀回同一列，直到 commit 前不被其他請求修改

這個模組提供第 2 層。
"""
from sqlalchemy.orm import Session, Query

from models import User


def with_user_lock(player_id: str, db: Session) -> Query:
    """
    鎖定一個玩家的帳本（行級鎖）

    使用場景：
    - 條件式 UPDATE 之後讀回新餘額，寫入 LedgerEntry
    - 登入時查詢玩家

    範例：
        db.execute(update(User).where(User.player_id == player_id).values(balance=User.balance + amount))
        user = with_user_lock(player_id, db).first()
        db.add(LedgerEntry(user_id=user.id, amount=amount, balance_after=user.balance))

    參數：
        player_id: 玩家識別
        db: SQLAlchemy Session

    返回：
        Query object（需要呼叫 .first() 或 .one() 來取得結果）

    注意：
        - SQLite 會忽略 FOR UPDATE，不能拿這個鎖做「讀取 → 計算 → 寫回」；
          餘額的檢查與修改一律交給條件式 UPDATE
        - 必須在 transaction 內使用（確保有 commit 或 rollback）
    """
    return db.query(User).filter(
        User.player_id == player_id
    ).with_for_update(nowait=False)
