"""
派彩服務：計算贏家可拿到的彩池

純計算邏輯
"""
from decimal import Decimal, ROUND_DOWN

CENT = Decimal("0.01")


def calculate_pot(stake: Decimal, player_count: int, payout_ratio: Decimal) -> Decimal:
    """
    計算一回合的彩池

    公式：
        pot = stake * player_count * payout_ratio

    剩下的 (1 - payout_ratio) 為平台抽成。
    結果無條件捨去到分，避免派出超過彩池的金額。

    參數：
        stake: 房間賭注
        player_count: 本回合參與人數（含已斷線的玩家）
        payout_ratio: 派彩比例（預設 0.8）

    返回：
        彩池金額

    範例：
        calculate_pot(Decimal("10"), 2, Decimal("0.8")) -> Decimal("16.00")
    """
    if player_count < 0:
        raise ValueError(f"player_count must be >= 0, got {player_count}")
    pot = Decimal(stake) * player_count * Decimal(payout_ratio)
    return pot.quantize(CENT, rounding=ROUND_DOWN)
