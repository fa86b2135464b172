"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層（HTTP 與 WebSocket）統一處理。
每個異常帶有 `code`，即回傳給客戶端的錯誤代碼。
"""


class BingoGameException(Exception):
    """所有遊戲異常的基類"""
    code = "BingoError"


# ============ Room 相關異常 ============

class UnknownRoom(BingoGameException):
    """房間不存在"""
    code = "UnknownRoom"

    def __init__(self, room_id):
        self.room_id = room_id
        super().__init__(f"Room {room_id} not found")


class InvalidRoomState(BingoGameException):
    """房間狀態不允許此操作（遊戲中加入、等待中宣告、遲到的宣告）"""
    code = "InvalidRoomState"


class AlreadyJoined(InvalidRoomState):
    """玩家本回合已經加入過這個房間"""
    pass


class NotAMember(InvalidRoomState):
    """玩家不是本回合的參與者"""
    pass


# ============ 宣告相關異常 ============

class NoWin(BingoGameException):
    """宣告 Bingo，但卡片尚未連線（不改變任何狀態）"""
    code = "NoWin"


# ============ 帳本相關異常 ============

class PlayerNotFound(BingoGameException):
    """玩家帳本不存在（尚未登入）"""
    code = "PlayerNotFound"

    def __init__(self, player_id):
        self.player_id = player_id
        super().__init__(f"Player {player_id} not found")


class InsufficientFunds(BingoGameException):
    """餘額不足以支付房間賭注"""
    code = "InsufficientFunds"

    def __init__(self, player_id, balance, amount):
        self.player_id = player_id
        self.balance = balance
        self.amount = amount
        super().__init__(
            f"Insufficient funds for player {player_id}: balance {balance}, required {amount}"
        )


class SettlementFailed(BingoGameException):
    """派彩入帳失敗，本回合作廢並等待人工對帳"""
    code = "SettlementFailed"
