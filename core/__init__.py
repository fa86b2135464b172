"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- RoomEngine：單一房間的狀態機（WAITING ↔ PLAYING）
- RoomRegistry：所有房間的擁有者，handler 透過它操作房間
- GameClock：固定週期驅動所有房間的 tick
- Events / ConnectionManager：對外事件的發送
- Locks：並發控制工具
"""
