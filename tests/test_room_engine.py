"""Tests for the per-room lobby/draw state machine, joins, claims and leaves."""

import threading
from decimal import Decimal

import pytest

from core.events import (
    BALANCE_UPDATE,
    GAME_OVER,
    GAME_START,
    LOBBY_UPDATE,
    NUMBER_CALLED,
    PLAYER_COUNT,
)
from core.exceptions import (
    AlreadyJoined,
    InsufficientFunds,
    InvalidRoomState,
    NoWin,
    NotAMember,
    PlayerNotFound,
    SettlementFailed,
)
from models import RoomStatus
from services.ledger_service import SettlementLedger
from services.win_service import check_win
from tests.conftest import draw_all_numbers, draw_until_win, start_round


class TestLobby:

    def test_initial_state(self, make_room):
        room = make_room(lobby_duration=30)
        assert room.status == RoomStatus.WAITING
        assert room.timer == 30
        assert room.called_numbers == []
        assert room.player_count == 0

    def test_countdown(self, make_room):
        room = make_room(lobby_duration=3)
        room.tick()
        assert room.timer == 2
        assert room.status == RoomStatus.WAITING

    def test_empty_room_resets_instead_of_starting(self, make_room, sink):
        room = make_room(lobby_duration=3)
        for _ in range(3):
            room.tick()
        assert room.timer == 0

        room.tick()
        assert room.status == RoomStatus.WAITING
        assert room.timer == 3
        assert sink.named(GAME_START) == []

    def test_lobby_update_every_waiting_tick(self, make_room, sink):
        room = make_room(lobby_duration=3)
        for _ in range(5):
            room.tick()

        updates = sink.named(LOBBY_UPDATE)
        assert len(updates) == 5
        assert [u.data["timer"] for u in updates] == [2, 1, 0, 3, 2]
        assert all(u.recipients is None for u in updates)
        assert updates[0].data == {"room_id": "R1", "timer": 2, "status": "WAITING", "player_count": 0}

    def test_round_starts_with_one_player(self, make_room, ledger, sink):
        room = make_room(lobby_duration=2, draw_interval=4)
        ledger.find_or_create_user("a")
        room.join("a", 5)

        start_round(room)
        assert room.called_numbers == []
        assert room.timer == 4

        starts = sink.named(GAME_START)
        assert len(starts) == 1
        assert starts[0].data == {"room_id": "R1"}
        assert starts[0].recipients == frozenset({"a"})
        # the transition tick still reports to the lobby
        assert sink.named(LOBBY_UPDATE)[-1].data["status"] == "PLAYING"

    def test_no_lobby_update_while_playing(self, make_room, ledger, sink):
        room = make_room(lobby_duration=0)
        ledger.find_or_create_user("a")
        room.join("a", 5)
        room.tick()
        sink.clear()

        for _ in range(10):
            room.tick()
        assert sink.named(LOBBY_UPDATE) == []


class TestDrawPhase:

    def test_draw_pacing(self, make_room, ledger, sink):
        room = make_room(lobby_duration=0, draw_interval=4)
        ledger.find_or_create_user("a")
        room.join("a", 5)
        room.tick()
        assert room.status == RoomStatus.PLAYING

        for expected_timer in (3, 2, 1, 0):
            room.tick()
            assert room.timer == expected_timer
            assert room.called_numbers == []

        room.tick()
        assert len(room.called_numbers) == 1
        assert room.timer == 4

        called = sink.named(NUMBER_CALLED)
        assert len(called) == 1
        assert called[0].data == {"room_id": "R1", "number": room.called_numbers[0]}
        assert called[0].recipients == frozenset({"a"})

    def test_numbers_unique_and_growing(self, make_room, ledger):
        room = make_room(lobby_duration=0, draw_interval=0)
        ledger.find_or_create_user("a")
        room.join("a", 5)
        room.tick()

        previous = 0
        for _ in range(75):
            room.tick()
            called = room.called_numbers
            assert len(called) == previous + 1
            assert len(set(called)) == len(called)
            assert all(1 <= n <= 75 for n in called)
            previous = len(called)

        assert sorted(room.called_numbers) == list(range(1, 76))

    def test_exhaustion_ends_round_without_winner(self, make_room, ledger, sink):
        room = make_room(lobby_duration=5, draw_interval=0)
        ledger.find_or_create_user("a")
        room.join("a", 5)
        start_round(room)
        draw_all_numbers(room)

        room.tick()
        assert room.status == RoomStatus.WAITING
        assert room.timer == 5
        assert room.player_count == 0
        overs = sink.named(GAME_OVER)
        assert len(overs) == 1
        assert overs[0].data == {"room_id": "R1", "winner": None}
        assert overs[0].recipients == frozenset({"a"})
        # no refund on exhaustion
        assert ledger.get_account("a").balance == Decimal("40")

    def test_called_numbers_reset_on_next_round(self, make_room, ledger):
        room = make_room(lobby_duration=0, draw_interval=0)
        ledger.find_or_create_user("a")
        room.join("a", 5)
        room.tick()
        for _ in range(3):
            room.tick()
        assert len(room.called_numbers) == 3

        # end the round via exhaustion
        draw_all_numbers(room)
        room.tick()
        assert room.status == RoomStatus.WAITING

        room.join("a", 6)
        room.tick()
        assert room.status == RoomStatus.PLAYING
        assert room.called_numbers == []


class TestJoin:

    def test_join_debits_stake(self, make_room, ledger, sink):
        room = make_room()
        ledger.find_or_create_user("a")

        account = room.join("a", 17)
        assert account.balance == Decimal("40")
        assert ledger.get_account("a").balance == Decimal("40")
        assert room.is_member("a")

        balance_events = sink.named(BALANCE_UPDATE)
        assert balance_events[-1].data == {"balance": 40.0}
        assert balance_events[-1].recipients == frozenset({"a"})
        counts = sink.named(PLAYER_COUNT)
        assert counts[-1].data == {"room_id": "R1", "count": 1}

    def test_insufficient_funds(self, make_room, ledger, sink):
        room = make_room(stake="60")
        ledger.find_or_create_user("a")

        with pytest.raises(InsufficientFunds):
            room.join("a", 17)
        assert ledger.get_account("a").balance == Decimal("50")
        assert not room.is_member("a")
        assert sink.named(PLAYER_COUNT) == []

    def test_unknown_player(self, make_room):
        room = make_room()
        with pytest.raises(PlayerNotFound):
            room.join("ghost", 1)
        assert room.player_count == 0

    def test_join_while_playing(self, make_room, ledger):
        room = make_room(lobby_duration=0)
        ledger.find_or_create_user("a")
        ledger.find_or_create_user("b")
        room.join("a", 1)
        room.tick()

        with pytest.raises(InvalidRoomState):
            room.join("b", 2)
        assert ledger.get_account("b").balance == Decimal("50")
        assert room.player_count == 1

    def test_duplicate_join(self, make_room, ledger):
        room = make_room()
        ledger.find_or_create_user("a")
        room.join("a", 1)

        with pytest.raises(AlreadyJoined):
            room.join("a", 2)
        assert ledger.get_account("a").balance == Decimal("40")
        assert room.player_count == 1

    def test_same_board_number_for_two_players(self, make_room, ledger):
        room = make_room()
        for pid in ("a", "b"):
            ledger.find_or_create_user(pid)
            room.join(pid, 9)
        assert room.player_count == 2


class TestClaim:

    def test_claim_while_waiting(self, make_room, ledger):
        room = make_room()
        ledger.find_or_create_user("a")
        room.join("a", 1)
        with pytest.raises(InvalidRoomState):
            room.claim("a")

    def test_claim_from_non_member(self, make_room, ledger):
        room = make_room(lobby_duration=0)
        ledger.find_or_create_user("a")
        room.join("a", 1)
        room.tick()

        with pytest.raises(NotAMember) as exc_info:
            room.claim("b")
        assert exc_info.value.code == "InvalidRoomState"

    def test_claim_without_pattern(self, make_room, ledger, sink):
        room = make_room(lobby_duration=0)
        ledger.find_or_create_user("a")
        room.join("a", 1)
        room.tick()

        with pytest.raises(NoWin):
            room.claim("a")
        assert room.status == RoomStatus.PLAYING
        assert room.is_member("a")
        assert sink.named(GAME_OVER) == []

    def test_winning_claim(self, make_room, ledger, sink):
        room = make_room(lobby_duration=0, draw_interval=0)
        for pid in ("a", "b", "c"):
            ledger.find_or_create_user(pid, first_name=pid.upper())
            room.join(pid, {"a": 11, "b": 22, "c": 33}[pid])
        room.tick()
        draw_until_win(room, 11)
        win = check_win(11, room.called_numbers)

        result = room.claim("a")
        assert result.win == win
        assert result.amount == Decimal("24.00")
        assert result.account.balance == Decimal("64")

        over = sink.named(GAME_OVER)
        assert len(over) == 1
        assert over[0].data == {
            "room_id": "R1",
            "winner": "A",
            "winner_id": "a",
            "amount": 24.0,
            "win_info": win.to_dict(),
        }
        assert over[0].recipients == frozenset({"a", "b", "c"})
        assert sink.named(BALANCE_UPDATE)[-1].data == {"balance": 64.0}

        assert room.status == RoomStatus.WAITING
        assert room.player_count == 0
        assert room.timer == 0

    def test_second_claim_in_same_round_is_late(self, make_room, ledger):
        room = make_room(lobby_duration=0, draw_interval=0)
        for pid in ("a", "b"):
            ledger.find_or_create_user(pid)
            room.join(pid, 5)  # same board: both win at once
        room.tick()
        draw_until_win(room, 5)

        room.claim("a")
        with pytest.raises(InvalidRoomState):
            room.claim("b")
        assert ledger.get_account("b").balance == Decimal("40")

    def test_failed_payout_voids_round(self, make_room, ledger, session_factory, sink):
        class FailingLedger(SettlementLedger):
            def credit(self, *args, **kwargs):
                raise RuntimeError("ledger unavailable")

        failing = FailingLedger(session_factory)
        room = make_room(lobby_duration=0, draw_interval=0, room_ledger=failing)
        ledger.find_or_create_user("a")
        room.join("a", 3)
        room.tick()
        draw_until_win(room, 3)

        with pytest.raises(SettlementFailed) as exc_info:
            room.claim("a")
        assert isinstance(exc_info.value.__cause__, RuntimeError)

        over = sink.named(GAME_OVER)
        assert len(over) == 1
        assert over[0].data == {"room_id": "R1", "winner": None, "settlement_failed": True}
        assert room.status == RoomStatus.WAITING
        assert room.player_count == 0

        assert len(room.unsettled) == 1
        pending = room.unsettled[0]
        assert pending.player_id == "a"
        assert pending.amount == Decimal("8.00")
        assert "ledger unavailable" in pending.error
        assert ledger.get_account("a").balance == Decimal("40")


class TestLeave:

    def test_leave_in_lobby_refunds(self, make_room, ledger, sink):
        room = make_room()
        ledger.find_or_create_user("a")
        room.join("a", 1)

        assert room.leave("a") is True
        assert not room.is_member("a")
        assert ledger.get_account("a").balance == Decimal("50")
        assert sink.named(PLAYER_COUNT)[-1].data == {"room_id": "R1", "count": 0}
        assert sink.named(BALANCE_UPDATE)[-1].data == {"balance": 50.0}

    def test_leave_mid_round_forfeits(self, make_room, ledger):
        room = make_room(lobby_duration=0, draw_interval=0)
        ledger.find_or_create_user("a")
        room.join("a", 1)
        room.tick()

        assert room.leave("a") is False
        assert room.is_member("a")
        assert ledger.get_account("a").balance == Decimal("40")

        # the forfeited board can still win after reconnecting
        draw_until_win(room, 1)
        assert room.claim("a").amount == Decimal("8.00")

    def test_leave_non_member(self, make_room):
        assert make_room().leave("nobody") is False

    def test_empty_after_leave_does_not_start(self, make_room, ledger):
        room = make_room(lobby_duration=1)
        ledger.find_or_create_user("a")
        room.join("a", 1)
        room.leave("a")
        room.tick()
        room.tick()
        assert room.status == RoomStatus.WAITING


def test_snapshot(make_room, ledger):
    room = make_room(lobby_duration=30)
    ledger.find_or_create_user("a")
    room.join("a", 1)
    assert room.snapshot() == {
        "room_id": "R1",
        "stake": 10.0,
        "status": "WAITING",
        "timer": 30,
        "player_count": 1,
        "called_numbers": [],
        "lobby_duration": 30,
        "draw_interval": 4,
    }


@pytest.mark.parametrize("read", [
    lambda room: room.status,
    lambda room: room.timer,
    lambda room: room.player_count,
    lambda room: room.is_member("a"),
    lambda room: room.called_numbers,
])
def test_state_reads_wait_for_the_room_lock(make_room, read):
    room = make_room()
    seen = []
    reader = threading.Thread(target=lambda: seen.append(read(room)))

    with room._lock:
        reader.start()
        reader.join(timeout=0.2)
        assert reader.is_alive()
        assert seen == []

    reader.join(timeout=5)
    assert len(seen) == 1
