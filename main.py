from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import asyncio

from database import Base, SessionLocal, engine as default_engine, get_settings
from logging_config import setup_logging, get_logger
from core.connection_manager import ConnectionManager
from core.game_clock import GameClock
from core.registry import RoomRegistry
from core.room_engine import RoomConfig
from services.ledger_service import SettlementLedger
from api import boards, deposits, players, rooms, websocket

_settings = get_settings()
setup_logging(log_level=_settings.log_level, log_file=_settings.log_file)
logger = get_logger(__name__)


def create_app(settings=None, db_engine=None, session_factory=None, start_clock=True, rng=None) -> FastAPI:
    """
    建立 FastAPI app，並把 registry / ledger / connections 放進 app.state

    測試時傳入 in-memory 的 db_engine / session_factory，並關閉時鐘
    """
    settings = settings or get_settings()
    db_engine = db_engine or default_engine
    session_factory = session_factory or SessionLocal

    connections = ConnectionManager()
    ledger = SettlementLedger(session_factory, starting_bonus=settings.starting_bonus)
    registry = RoomRegistry(
        [
            RoomConfig(
                id=room.id,
                stake=room.stake,
                lobby_duration=room.lobby_duration,
                draw_interval=settings.draw_interval,
            )
            for room in settings.rooms
        ],
        ledger,
        sink=connections,
        payout_ratio=settings.payout_ratio,
        rng=rng,
    )
    clock = GameClock(registry, interval_seconds=settings.tick_interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup: 建立資料表、綁定 event loop、啟動時鐘
        Base.metadata.create_all(bind=db_engine)
        connections.bind_loop(asyncio.get_running_loop())
        if start_clock:
            clock.start()
        yield
        # Shutdown
        clock.shutdown()
        unsettled = registry.unsettled()
        if unsettled:
            logger.error(f"Shutting down with {len(unsettled)} unsettled payouts: {unsettled}")

    app = FastAPI(
        title="Bingo Room API",
        description="Real-time multi-room bingo engine",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.ledger = ledger
    app.state.registry = registry
    app.state.connections = connections
    app.state.clock = clock

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure this properly in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(players.router)
    app.include_router(rooms.router)
    app.include_router(boards.router)
    app.include_router(deposits.router)
    app.include_router(websocket.router)

    @app.get("/")
    def root():
        return {"message": "Bingo Room API", "status": "ok"}

    @app.get("/health")
    def health():
        return {"status": "healthy", "clock_running": clock.running}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting bingo server on {_settings.host}:{_settings.port}")
    uvicorn.run(app, host=_settings.host, port=_settings.port)
