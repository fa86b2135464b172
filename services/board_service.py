"""
卡片服務：由玩家選擇的號碼產生固定的 5x5 Bingo 卡

純計算邏輯，不存任何卡片：同一個號碼永遠得到同一張卡。

欄位範圍：
┌─────┬───────┬───────┬───────┬───────┐
│  B  │   I   │   N   │   G   │   O   │
│1-15 │ 16-30 │ 31-45 │ 46-60 │ 61-75 │
└─────┴───────┴───────┴───────┴───────┘
中央格（row 2, col 2）固定為萬用格 "*"。
"""
from typing import List, Union

FREE = "*"
BOARD_SIZE = 5
COLUMN_SPAN = 15
MAX_NUMBER = BOARD_SIZE * COLUMN_SPAN

Cell = Union[int, str]
Board = List[List[Cell]]

_MASK64 = (1 << 64) - 1


def splitmix64(x: int) -> int:
    """
    SplitMix64 的單步混合函式（Steele, Lea, Flood 2014）

    常數：
        增量 0x9E3779B97F4A7C15（黃金比例）
        乘數 0xBF58476D1CE4E5B9, 0x94D049BB133111EB
        位移 30, 27, 31

    輸入輸出皆為 64-bit 無號整數。
    """
    z = (x + 0x9E3779B97F4A7C15) & _MASK64
    z = ((z ^ (z >> 30)) * 0xBF58476D1CE4E5B9) & _MASK64
    z = ((z ^ (z >> 27)) * 0x94D049BB133111EB) & _MASK64
    return z ^ (z >> 31)


def seeded_random(board_number: int, column: int, swap_index: int) -> float:
    """
    以 (board_number, column, swap_index) 為 key 產生 [0, 1) 的亂數

    三個欄位依序串接混合，取最高 53 bits 轉成 float（double 的精度上限）。
    負數的 board_number 以 2**64 取模。
    """
    key = splitmix64(board_number & _MASK64)
    key = splitmix64(key ^ column)
    key = splitmix64(key ^ swap_index)
    return (key >> 11) / float(1 << 53)


def generate_board(board_number: int) -> Board:
    """
    產生 board_number 對應的 5x5 卡片

    流程：
    1. 每一欄建立 15 個號碼的池（依序排列）
    2. Fisher-Yates 洗牌：i 從 14 到 1，j = floor(r * (i + 1))
    3. 洗好的前 5 個號碼由上到下填入該欄
    4. 中央格覆寫為 FREE

    參數：
        board_number: 玩家選擇的號碼（任意整數）

    返回：
        board[row][col]，值為 int 或 FREE

    範例：
        generate_board(7) == generate_board(7)  # 永遠成立
    """
    board: Board = [[0] * BOARD_SIZE for _ in range(BOARD_SIZE)]

    for col in range(BOARD_SIZE):
        low = col * COLUMN_SPAN + 1
        pool = list(range(low, low + COLUMN_SPAN))

        for i in range(len(pool) - 1, 0, -1):
            j = int(seeded_random(board_number, col, i) * (i + 1))
            pool[i], pool[j] = pool[j], pool[i]

        for row in range(BOARD_SIZE):
            board[row][col] = pool[row]

    center = BOARD_SIZE // 2
    board[center][center] = FREE
    return board


def column_range(col: int) -> range:
    """第 col 欄允許的號碼範圍"""
    low = col * COLUMN_SPAN + 1
    return range(low, low + COLUMN_SPAN)
