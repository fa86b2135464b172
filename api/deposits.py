"""
Deposit API Endpoint

由外部的儲值審核流程（管理員核准後）呼叫，
入帳後推送 balance_update 給玩家目前的連線。
"""
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
import logging

from schemas import DepositRequest, DepositResponse
from core.connection_manager import ConnectionManager
from core.events import OutboundEvent, BALANCE_UPDATE, to_players
from core.exceptions import PlayerNotFound
from services.ledger_service import SettlementLedger
from api.deps import get_ledger, get_connections, to_http_exception

router = APIRouter(prefix="/api", tags=["deposits"])
logger = logging.getLogger(__name__)


@router.post("/deposit", response_model=DepositResponse)
def deposit(
    deposit_data: DepositRequest,
    ledger: SettlementLedger = Depends(get_ledger),
    connections: ConnectionManager = Depends(get_connections),
):
    try:
        # float -> str -> Decimal，避免二進位誤差
        account = ledger.deposit(deposit_data.player_id, Decimal(str(deposit_data.amount)))

        connections.publish(OutboundEvent(
            name=BALANCE_UPDATE,
            data={"balance": float(account.balance)},
            recipients=to_players([account.player_id]),
        ))
        return DepositResponse(success=True, balance=float(account.balance))

    except PlayerNotFound as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to deposit: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
