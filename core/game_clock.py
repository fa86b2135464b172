"""
GameClock：所有房間共用的固定週期時鐘

- 唯一會觸發時間相關狀態轉換的來源
- 使用 APScheduler 的 interval job；max_instances=1 確保 tick 不會重疊，
  coalesce=True 讓延遲累積的 tick 合併成一次
- 同步的 job 由 scheduler 丟到 executor 執行緒，不會卡住 event loop
"""
from typing import Optional
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.schedulers.base import BaseScheduler

from core.registry import RoomRegistry

logger = logging.getLogger(__name__)

JOB_ID = "room-clock"


class GameClock:

    def __init__(self, registry: RoomRegistry, interval_seconds: float = 1.0,
                 scheduler: Optional[BaseScheduler] = None):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0, got {interval_seconds}")
        self._registry = registry
        self.interval_seconds = interval_seconds
        self._scheduler = scheduler or AsyncIOScheduler()
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def tick(self) -> None:
        self.ticks += 1
        self._registry.tick_all()

    def start(self) -> None:
        """
        開始計時

        注意：
            預設的 AsyncIOScheduler 必須在 event loop 內啟動（FastAPI lifespan）
        """
        self._scheduler.add_job(
            self.tick,
            "interval",
            seconds=self.interval_seconds,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(f"Game clock started ({self.interval_seconds}s per tick)")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info(f"Game clock stopped after {self.ticks} ticks")
