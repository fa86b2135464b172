"""
Player API Endpoints

職責：
1. 玩家登入（建立或查詢帳本）
2. 查詢餘額
"""
from fastapi import APIRouter, Depends, HTTPException
import logging

from schemas import PlayerLogin, BalanceResponse
from core.exceptions import PlayerNotFound
from services.ledger_service import SettlementLedger
from api.deps import get_ledger, to_http_exception

router = APIRouter(prefix="/api/players", tags=["players"])
logger = logging.getLogger(__name__)


@router.post("/login", response_model=BalanceResponse)
def login(player_data: PlayerLogin, ledger: SettlementLedger = Depends(get_ledger)):
    """
    登入（首次登入會建立帳本並贈送起始餘額）

    返回：
        - player_id
        - balance: 目前餘額
    """
    try:
        account = ledger.find_or_create_user(
            player_data.player_id,
            first_name=player_data.first_name,
            username=player_data.username,
        )
        logger.info(f"Player {account.player_id} logged in (balance {account.balance})")
        return BalanceResponse(player_id=account.player_id, balance=float(account.balance))

    except Exception as e:
        logger.error(f"Failed to login: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{player_id}/balance", response_model=BalanceResponse)
def get_balance(player_id: str, ledger: SettlementLedger = Depends(get_ledger)):
    try:
        account = ledger.get_account(player_id)
        return BalanceResponse(player_id=account.player_id, balance=float(account.balance))

    except PlayerNotFound as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to get balance: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
