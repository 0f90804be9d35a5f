"""Callbacks from the payment processor. The only way in for confirm/fail."""

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from firefight.config import settings
from firefight.database import get_db
from firefight.schemas import DepositCallback, ParticipantOut, TransactionOut
from firefight.services import registration_service, wallet_service


def verify_callback(x_payment_secret: str = Header(None)):
    if settings.payment_callback_secret and x_payment_secret != settings.payment_callback_secret:
        raise HTTPException(401, "Invalid payment callback secret")


router = APIRouter(prefix="/api/payments", dependencies=[Depends(verify_callback)])


@router.post("/deposit", response_model=TransactionOut)
def deposit(payload: DepositCallback, db: Session = Depends(get_db)):
    return wallet_service.deposit(db, payload.user_id, payload.amount, payload.external_ref)


@router.post("/{transaction_id}/confirm", response_model=ParticipantOut)
def confirm_payment(transaction_id: str, db: Session = Depends(get_db)):
    return registration_service.confirm_payment(db, transaction_id)


@router.post("/{transaction_id}/fail", response_model=ParticipantOut)
def fail_payment(transaction_id: str, db: Session = Depends(get_db)):
    return registration_service.fail_payment(db, transaction_id)
