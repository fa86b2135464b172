import random
import threading
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from core.events import EventSink
from core.room_engine import RoomConfig, RoomEngine
from models import RoomStatus
from services.ledger_service import SettlementLedger
from services.win_service import check_win


class RecordingSink(EventSink):
    """Collects every published event, thread-safe."""

    def __init__(self):
        self.events = []
        self._lock = threading.Lock()

    def publish(self, event):
        with self._lock:
            self.events.append(event)

    def named(self, name):
        with self._lock:
            return [e for e in self.events if e.name == name]

    def clear(self):
        with self._lock:
            self.events.clear()


@pytest.fixture
def db_engine(tmp_path):
    # file-backed so that every thread gets its own connection
    engine = create_engine(
        f"sqlite:///{tmp_path / 'bingo-test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False)


@pytest.fixture
def ledger(session_factory):
    return SettlementLedger(session_factory, starting_bonus=Decimal("50"))


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def make_room(ledger, sink):
    def _make(room_id="R1", stake="10", lobby_duration=3, draw_interval=4, seed=1234, room_ledger=None):
        config = RoomConfig(
            id=room_id,
            stake=Decimal(stake),
            lobby_duration=lobby_duration,
            draw_interval=draw_interval,
        )
        return RoomEngine(
            config,
            room_ledger or ledger,
            sink=sink,
            payout_ratio=Decimal("0.8"),
            rng=random.Random(seed),
        )
    return _make


def start_round(room):
    """Tick a room with members through its lobby countdown."""
    for _ in range(room.config.lobby_duration + 1):
        room.tick()
    assert room.status == RoomStatus.PLAYING


def draw_until_win(room, board_number):
    """Tick until the board has a winning pattern; returns the number of ticks."""
    ticks = 0
    while check_win(board_number, room.called_numbers) is None:
        assert room.status == RoomStatus.PLAYING
        room.tick()
        ticks += 1
    return ticks


def draw_all_numbers(room):
    """For rooms with draw_interval=0: call every number without ending the round."""
    while len(room.called_numbers) < 75:
        room.tick()
    assert room.status == RoomStatus.PLAYING
