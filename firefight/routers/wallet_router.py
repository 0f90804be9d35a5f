from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from firefight.auth import Actor, get_current_actor
from firefight.database import get_db
from firefight.schemas import BalanceOut, TransactionOut, WithdrawRequest
from firefight.services import wallet_service

router = APIRouter(prefix="/api/wallet")


@router.get("/balance", response_model=BalanceOut)
def balance(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return wallet_service.get_balance(db, actor.user_id)


@router.get("/transactions", response_model=List[TransactionOut])
def transactions(limit: int = Query(50, ge=1, le=200), actor: Actor = Depends(get_current_actor),
                 db: Session = Depends(get_db)):
    return wallet_service.list_for_user(db, actor.user_id, limit)


@router.post("/withdraw", response_model=TransactionOut)
def withdraw(payload: WithdrawRequest, actor: Actor = Depends(get_current_actor),
             db: Session = Depends(get_db)):
    return wallet_service.request_withdrawal(db, actor, payload.amount)
