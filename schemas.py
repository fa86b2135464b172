"""
Request / Response schemas
"""
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from models import RoomStatus, PatternType


# ============ Player ============

class PlayerLogin(BaseModel):
    player_id: str = Field(..., min_length=1, max_length=64)
    first_name: Optional[str] = None
    username: Optional[str] = None


class BalanceResponse(BaseModel):
    player_id: str
    balance: float


# ============ Room ============

class RoomStateResponse(BaseModel):
    room_id: str
    stake: float
    status: RoomStatus
    timer: int
    player_count: int
    called_numbers: List[int]
    lobby_duration: int
    draw_interval: int


class JoinRequest(BaseModel):
    player_id: str
    board_number: int


class JoinResponse(BaseModel):
    balance: float


class PlayerAction(BaseModel):
    player_id: str


class WinInfo(BaseModel):
    type: PatternType
    index: int


class ClaimResponse(BaseModel):
    status: str
    amount: float
    win_info: WinInfo


class LeaveResponse(BaseModel):
    refunded: bool


# ============ Board ============

class BoardResponse(BaseModel):
    board_number: int
    board: List[List[Union[int, str]]]


# ============ Deposit ============

class DepositRequest(BaseModel):
    player_id: str
    amount: float = Field(..., gt=0)


class DepositResponse(BaseModel):
    success: bool
    balance: float
