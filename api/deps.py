"""
API 共用的 dependency 與錯誤轉換

registry / ledger / connections 在 create_app() 時放進 app.state，
handler 透過 Depends 取得，不使用全域變數。
"""
from fastapi import HTTPException, Request

from core.connection_manager import ConnectionManager
from core.exceptions import (
    BingoGameException,
    UnknownRoom,
    PlayerNotFound,
    InsufficientFunds,
    InvalidRoomState,
    NoWin,
)
from core.registry import RoomRegistry
from services.ledger_service import SettlementLedger

STATUS_CODES = {
    UnknownRoom: 404,
    PlayerNotFound: 404,
    InsufficientFunds: 402,
    InvalidRoomState: 409,
    NoWin: 400,
}


def get_registry(request: Request) -> RoomRegistry:
    return request.app.state.registry


def get_ledger(request: Request) -> SettlementLedger:
    return request.app.state.ledger


def get_connections(request: Request) -> ConnectionManager:
    return request.app.state.connections


def error_body(e: BingoGameException) -> dict:
    return {"code": e.code, "message": str(e)}


def to_http_exception(e: BingoGameException) -> HTTPException:
    """把業務異常轉成 HTTPException（子類別沿用父類別的 status code）"""
    for exc_type, status_code in STATUS_CODES.items():
        if isinstance(e, exc_type):
            return HTTPException(status_code=status_code, detail=error_body(e))
    return HTTPException(status_code=500, detail=error_body(e))
