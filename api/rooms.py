"""
Room API Endpoints

職責：
1. 查詢房間狀態（大廳）
2. 加入 / 宣告 / 離開

所有房間操作都交給 RoomRegistry → RoomEngine，
這一層只負責轉換 request / response 與錯誤代碼。
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException
import logging

from schemas import (
    RoomStateResponse,
    JoinRequest,
    JoinResponse,
    PlayerAction,
    ClaimResponse,
    LeaveResponse,
    WinInfo,
)
from core.registry import RoomRegistry
from core.exceptions import BingoGameException
from api.deps import get_registry, to_http_exception

router = APIRouter(prefix="/api/rooms", tags=["rooms"])
logger = logging.getLogger(__name__)


@router.get("", response_model=List[RoomStateResponse])
def list_rooms(registry: RoomRegistry = Depends(get_registry)):
    return [RoomStateResponse(**room.snapshot()) for room in registry.rooms()]


@router.get("/{room_id}", response_model=RoomStateResponse)
def get_room(room_id: str, registry: RoomRegistry = Depends(get_registry)):
    try:
        return RoomStateResponse(**registry.get(room_id).snapshot())

    except BingoGameException as e:
        raise to_http_exception(e)


@router.post("/{room_id}/join", response_model=JoinResponse)
def join_room(room_id: str, join_data: JoinRequest, registry: RoomRegistry = Depends(get_registry)):
    """
    加入房間（扣除賭注）

    前置條件：
    - 房間必須存在
    - 房間狀態必須是 WAITING
    - 餘額 >= 賭注

    返回：
        - balance: 扣款後餘額

    錯誤代碼：
        UnknownRoom (404), InsufficientFunds (402), InvalidRoomState (409)
    """
    try:
        account = registry.join(room_id, join_data.player_id, join_data.board_number)
        return JoinResponse(balance=float(account.balance))

    except BingoGameException as e:
        logger.info(f"Join rejected for {join_data.player_id} in room {room_id}: {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to join room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/claim", response_model=ClaimResponse)
def claim_bingo(room_id: str, claim_data: PlayerAction, registry: RoomRegistry = Depends(get_registry)):
    """
    宣告 Bingo

    成功時所有參與者會收到 game_over；同回合後到的宣告得到 InvalidRoomState。

    錯誤代碼：
        UnknownRoom (404), InvalidRoomState (409), NoWin (400), SettlementFailed (500)
    """
    try:
        result = registry.claim(room_id, claim_data.player_id)
        return ClaimResponse(
            status="ok",
            amount=float(result.amount),
            win_info=WinInfo(type=result.win.pattern, index=result.win.index),
        )

    except BingoGameException as e:
        logger.info(f"Claim rejected for {claim_data.player_id} in room {room_id}: {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to claim: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/leave", response_model=LeaveResponse)
def leave_room(room_id: str, leave_data: PlayerAction, registry: RoomRegistry = Depends(get_registry)):
    """
    離開房間

    - WAITING：退款並移除
    - PLAYING：賭注沒收，卡片保留（refunded=False）
    """
    try:
        refunded = registry.leave(room_id, leave_data.player_id)
        return LeaveResponse(refunded=refunded)

    except BingoGameException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to leave room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
