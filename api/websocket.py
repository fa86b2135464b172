"""
WebSocket Endpoint：即時遊戲連線

Frame 格式（雙向）：
    {"event": "<name>", "data": {...}}

Client → Server：
    login        {"player_id", "first_name"?, "username"?}  -> login_success（同一連線不能換玩家）
    join_game    {"room_id", "board_number"}               -> joined_success
    bingo_claim  {"room_id"}                               -> （成功時由 game_over 廣播得知）
    leave_game   {"room_id"}                               -> left_game

Server → Client：
    lobby_update, game_start, number_called, game_over, player_count, balance_update,
    error {"code", "message"}

斷線政策：玩家最後一條連線中斷時，離開所有 WAITING 中的房間並退款；
PLAYING 中的回合不受影響（賭注留在彩池，重新連線後仍可宣告）。
"""
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool
import logging

from core.connection_manager import Connection, ConnectionManager
from core.exceptions import BingoGameException
from core.registry import RoomRegistry
from services.ledger_service import SettlementLedger
from api.deps import error_body

router = APIRouter(tags=["websocket"])
logger = logging.getLogger(__name__)


async def send_error(connections: ConnectionManager, connection: Connection, code: str, message: str) -> None:
    await connections.send_personal_message(connection, "error", {"code": code, "message": message})


async def handle_message(
    message: dict,
    connection: Connection,
    connections: ConnectionManager,
    registry: RoomRegistry,
    ledger: SettlementLedger,
) -> None:
    event = message.get("event")
    data = message.get("data") or {}

    if event == "login":
        player_id = str(data.get("player_id") or data.get("id") or "")
        if not player_id:
            await send_error(connections, connection, "BadRequest", "player_id is required")
            return
        # 一條連線只綁定一個玩家
        if connection.player_id is not None and connection.player_id != player_id:
            await send_error(connections, connection, "AlreadyLoggedIn",
                             f"connection is bound to player {connection.player_id}")
            return
        account = await run_in_threadpool(
            ledger.find_or_create_user,
            player_id,
            first_name=data.get("first_name"),
            username=data.get("username"),
        )
        connections.bind_player(connection, account.player_id)
        await connections.send_personal_message(connection, "login_success", {
            "player_id": account.player_id,
            "balance": float(account.balance),
        })
        return

    player_id = connection.player_id
    if player_id is None:
        await send_error(connections, connection, "NotLoggedIn", "login first")
        return

    if event == "join_game":
        room_id = data.get("room_id")
        try:
            board_number = int(data["board_number"])
        except (KeyError, TypeError, ValueError):
            await send_error(connections, connection, "BadRequest", "board_number must be an integer")
            return
        account = await run_in_threadpool(registry.join, room_id, player_id, board_number)
        await connections.send_personal_message(connection, "joined_success", {
            "room_id": room_id,
            "board_number": board_number,
            "balance": float(account.balance),
        })

    elif event == "bingo_claim":
        await run_in_threadpool(registry.claim, data.get("room_id"), player_id)

    elif event == "leave_game":
        room_id = data.get("room_id")
        refunded = await run_in_threadpool(registry.leave, room_id, player_id)
        await connections.send_personal_message(connection, "left_game", {
            "room_id": room_id,
            "refunded": refunded,
        })

    else:
        await send_error(connections, connection, "UnknownEvent", f"unknown event {event!r}")


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    state = websocket.app.state
    connections: ConnectionManager = state.connections
    registry: RoomRegistry = state.registry
    ledger: SettlementLedger = state.ledger

    connection = await connections.connect(websocket)
    logger.info(f"WebSocket connection {connection.id} opened")

    try:
        while True:
            try:
                message = await websocket.receive_json()
            except WebSocketDisconnect:
                logger.info(f"WebSocket connection {connection.id} disconnected")
                break
            except ValueError:
                await send_error(connections, connection, "BadRequest", "frames must be JSON objects")
                continue

            if not isinstance(message, dict):
                await send_error(connections, connection, "BadRequest", "frames must be JSON objects")
                continue

            try:
                await handle_message(message, connection, connections, registry, ledger)
            except BingoGameException as e:
                logger.info(f"Rejected {message.get('event')} from {connection.player_id}: {e}")
                await connections.send_personal_message(connection, "error", error_body(e))
            except Exception as e:
                logger.error(f"Error handling {message.get('event')} from connection {connection.id}: {e}", exc_info=True)
                await send_error(connections, connection, "InternalError", "internal error")

    finally:
        last_connection = await connections.disconnect(connection)
        if last_connection:
            left = await run_in_threadpool(registry.leave_all, connection.player_id)
            if left:
                logger.info(f"Player {connection.player_id} disconnected; refunded rooms {left}")
