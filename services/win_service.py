"""
連線判定服務：檢查一張卡在已叫號碼下是否完成任一圖形

純計算邏輯，每次呼叫都重新產生卡片，不共用任何可變狀態
"""
from dataclasses import dataclass
from typing import Collection, Optional

from models import PatternType
from services.board_service import BOARD_SIZE, FREE, generate_board

MAIN_DIAGONAL = 1
ANTI_DIAGONAL = 2
CORNERS = 0


@dataclass(frozen=True)
class WinResult:
    pattern: PatternType
    index: int

    def to_dict(self) -> dict:
        return {"type": self.pattern.value, "index": self.index}


def check_win(board_number: int, called_numbers: Collection[int]) -> Optional[WinResult]:
    """
    判斷 board_number 的卡片是否已連線

    檢查順序（找到第一個就停止）：
    1. 橫列，由上到下                 -> (ROW, row)
    2. 直欄，由左到右                 -> (COL, col)
    3. 左上到右下的對角線             -> (DIAG, 1)
    4. 右上到左下的對角線             -> (DIAG, 2)
    5. 四個角落（視為同一個圖形）     -> (CORNER, 0)

    參數：
        board_number: 玩家的卡片號碼
        called_numbers: 已叫出的號碼

    返回：
        WinResult，未連線時為 None
    """
    board = generate_board(board_number)
    called = set(called_numbers)

    def is_marked(value) -> bool:
        return value == FREE or value in called

    cells = range(BOARD_SIZE)
    last = BOARD_SIZE - 1

    for r in cells:
        if all(is_marked(board[r][c]) for c in cells):
            return WinResult(PatternType.ROW, r)

    for c in cells:
        if all(is_marked(board[r][c]) for r in cells):
            return WinResult(PatternType.COL, c)

    if all(is_marked(board[i][i]) for i in cells):
        return WinResult(PatternType.DIAG, MAIN_DIAGONAL)
    if all(is_marked(board[i][last - i]) for i in cells):
        return WinResult(PatternType.DIAG, ANTI_DIAGONAL)

    corners = (board[0][0], board[0][last], board[last][0], board[last][last])
    if all(is_marked(v) for v in corners):
        return WinResult(PatternType.CORNER, CORNERS)

    return None
