from fastapi import APIRouter

from schemas import BoardResponse
from services.board_service import generate_board

router = APIRouter(prefix="/api/boards", tags=["boards"])


@router.get("/{board_number}", response_model=BoardResponse)
def get_board(board_number: int):
    """回傳號碼對應的卡片，讓前端不必自己實作產生演算法"""
    return BoardResponse(board_number=board_number, board=generate_board(board_number))
