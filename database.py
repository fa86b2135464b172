from decimal import Decimal
from typing import List, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache, wraps
import logging

logger = logging.getLogger(__name__)


class RoomSettings(BaseModel):
    """單一房間的固定設定（啟動時建立，之後不再變動）"""
    id: str
    stake: Decimal
    lobby_duration: int


class Settings(BaseSettings):
    database_url: str = "sqlite:///./bingo.db"

    # 首次登入贈送的餘額
    starting_bonus: Decimal = Decimal("50")
    # 贏家拿走總彩池的比例
    payout_ratio: Decimal = Decimal("0.8")

    tick_interval_seconds: float = 1.0
    # 叫號間隔（以 tick 計）
    draw_interval: int = 4

    rooms: List[RoomSettings] = [
        RoomSettings(id="R1", stake=Decimal("10"), lobby_duration=30),
        RoomSettings(id="R2", stake=Decimal("50"), lobby_duration=60),
    ]

    log_level: str = "INFO"
    log_file: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 3001

    model_config = SettingsConfigDict(env_file=".env")


@lru_cache()
def get_settings():
    return Settings()


def build_engine(database_url: str):
    # SQLite 需要特殊設定：connect_args={"check_same_thread": False}
    # GameClock 與 FastAPI threadpool 會從不同執行緒存取
    return create_engine(
        database_url,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {},
        pool_pre_ping=True
    )


settings = get_settings()

engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def transactional(func):
    """
    Transaction decorator：確保資料庫操作的原子性

    使用方式：
        @transactional
        def debit(db: Session, ...):
            db.execute(update(User).where(...).values(balance=User.balance - amount))
            user = with_user_lock(player_id, db).first()
            # 不需要手動 commit，decorator 會處理

    如果函式內發生異常：
        - 自動 rollback
        - 異常會被重新拋出（讓上層處理）

    注意：
        - 第一個參數必須是 db: Session
        - 不要在函式內手動 commit（decorator 會處理）
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        # 找出 db session（可能在 args 或 kwargs）
        db = None
        if args and isinstance(args[0], Session):
            db = args[0]
        elif 'db' in kwargs:
            db = kwargs['db']

        if db is None:
            raise ValueError(
                f"@transactional requires 'db: Session' as first argument, "
                f"but got args={args}, kwargs={kwargs}"
            )

        try:
            result = func(*args, **kwargs)
            db.commit()
            return result
        except Exception as e:
            logger.warning(f"Transaction rolled back in {func.__name__}: {e}")
            db.rollback()
            raise

    return wrapper
