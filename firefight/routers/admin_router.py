from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from firefight.auth import Actor, get_admin_actor
from firefight.database import get_db
from firefight.schemas import (
    UserOut,
    UserUpdate,
    KycUpdate,
    TournamentOut,
    TournamentStatusUpdate,
    ParticipantOut,
    MatchCreate,
    MatchUpdate,
    MatchOut,
    ReportOut,
    ReportDecision,
    TransactionOut,
    WalletAdjust,
    RefundRequest,
)
from firefight.services import (
    user_service,
    tournament_service,
    match_service,
    wallet_service,
)

router = APIRouter(prefix="/api/admin")


# Users

@router.get("/users", response_model=List[UserOut])
def list_users(page: int = Query(1, ge=1), limit: int = Query(50, ge=1, le=200),
               admin: Actor = Depends(get_admin_actor), db: Session = Depends(get_db)):
    return user_service.get_all(db, limit, (page - 1) * limit)


@router.patch("/users/{user_id}", response_model=UserOut)
def update_user(user_id: str, payload: UserUpdate, admin: Actor = Depends(get_admin_actor),
                db: Session = Depends(get_db)):
    return user_service.update(db, admin, user_id, payload.is_banned, payload.is_admin)


@router.patch("/users/{user_id}/kyc", response_model=UserOut)
def update_kyc(user_id: str, payload: KycUpdate, admin: Actor = Depends(get_admin_actor),
               db: Session = Depends(get_db)):
    return user_service.set_kyc_status(db, admin, user_id, payload.status, payload.notes)


# Tournaments

@router.get("/tournaments", response_model=List[TournamentOut])
def list_tournaments(page: int = Query(1, ge=1), limit: int = Query(50, ge=1, le=200),
                     admin: Actor = Depends(get_admin_actor), db: Session = Depends(get_db)):
    return tournament_service.get_all(db, limit, (page - 1) * limit)


@router.patch("/tournaments/{tournament_id}/status", response_model=TournamentOut)
def update_tournament_status(tournament_id: str, payload: TournamentStatusUpdate,
                             admin: Actor = Depends(get_admin_actor), db: Session = Depends(get_db)):
    return tournament_service.update_status(db, admin, tournament_id, payload.status)


@router.delete("/tournaments/{tournament_id}/participants/{participant_id}", response_model=ParticipantOut)
def remove_participant(tournament_id: str, participant_id: str,
                       admin: Actor = Depends(get_admin_actor), db: Session = Depends(get_db)):
    return tournament_service.remove_participant(db, admin, tournament_id, participant_id)


# Matches and reports

@router.post("/tournaments/{tournament_id}/matches", response_model=MatchOut)
def create_match(tournament_id: str, payload: MatchCreate, admin: Actor = Depends(get_admin_actor),
                 db: Session = Depends(get_db)):
    return match_service.create(db, admin, tournament_id, payload.start_time)


@router.patch("/matches/{match_id}", response_model=MatchOut)
def update_match(match_id: str, payload: MatchUpdate, admin: Actor = Depends(get_admin_actor),
                 db: Session = Depends(get_db)):
    return match_service.update_match(
        db,
        admin,
        match_id,
        status=payload.status,
        winner_user_id=payload.winner_user_id,
        winner_team_id=payload.winner_team_id,
        results=payload.results,
    )


@router.get("/reports/pending", response_model=List[ReportOut])
def pending_reports(admin: Actor = Depends(get_admin_actor), db: Session = Depends(get_db)):
    return match_service.get_pending_reports(db, admin)


@router.post("/reports/{report_id}/verify", response_model=ReportOut)
def verify_report(report_id: str, payload: ReportDecision, admin: Actor = Depends(get_admin_actor),
                  db: Session = Depends(get_db)):
    return match_service.verify_report(db, report_id, admin, payload.decision, payload.notes)


# Wallets

@router.get("/transactions", response_model=List[TransactionOut])
def list_transactions(page: int = Query(1, ge=1), limit: int = Query(100, ge=1, le=500),
                      admin: Actor = Depends(get_admin_actor), db: Session = Depends(get_db)):
    return wallet_service.list_all(db, limit, (page - 1) * limit)


@router.post("/wallet/adjust", response_model=TransactionOut)
def adjust_wallet(payload: WalletAdjust, admin: Actor = Depends(get_admin_actor),
                  db: Session = Depends(get_db)):
    return wallet_service.admin_adjust(db, payload.user_id, payload.amount, admin, payload.reason)


@router.post("/wallet/transactions/{transaction_id}/refund", response_model=TransactionOut)
def refund_transaction(transaction_id: str, payload: RefundRequest,
                       admin: Actor = Depends(get_admin_actor), db: Session = Depends(get_db)):
    return wallet_service.admin_refund(db, transaction_id, admin, payload.reason)


@router.get("/wallet/stats")
def wallet_stats(admin: Actor = Depends(get_admin_actor), db: Session = Depends(get_db)):
    return wallet_service.stats(db)


@router.get("/withdrawals/pending", response_model=List[TransactionOut])
def pending_withdrawals(admin: Actor = Depends(get_admin_actor), db: Session = Depends(get_db)):
    return wallet_service.list_pending_withdrawals(db, admin)


@router.post("/withdrawals/{transaction_id}/approve", response_model=TransactionOut)
def approve_withdrawal(transaction_id: str, admin: Actor = Depends(get_admin_actor),
                       db: Session = Depends(get_db)):
    return wallet_service.decide_withdrawal(db, transaction_id, admin, approve=True)


@router.post("/withdrawals/{transaction_id}/reject", response_model=TransactionOut)
def reject_withdrawal(transaction_id: str, admin: Actor = Depends(get_admin_actor),
                      db: Session = Depends(get_db)):
    return wallet_service.decide_withdrawal(db, transaction_id, admin, approve=False)
