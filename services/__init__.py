"""
服務層

這個 package 包含純計算邏輯與帳本存取，不負責房間狀態轉換：
- BoardService：由號碼產生固定卡片
- WinService：連線判定
- PayoffService：彩池計算
- LedgerService：玩家餘額（SettlementLedger）
"""
