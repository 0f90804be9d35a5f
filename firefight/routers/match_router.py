from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from firefight.auth import Actor, get_current_actor
from firefight.database import get_db
from firefight.schemas import MatchOut, ReportCreate, ReportOut
from firefight.services import match_service

router = APIRouter(prefix="/api/matches")


@router.get("/live", response_model=List[MatchOut])
def live_matches(db: Session = Depends(get_db)):
    return match_service.get_live(db)


@router.get("/{match_id}", response_model=MatchOut)
def get_match(match_id: str, db: Session = Depends(get_db)):
    return match_service.get_or_404(db, match_id)


@router.post("/{match_id}/report", response_model=ReportOut)
def submit_report(match_id: str, payload: ReportCreate, actor: Actor = Depends(get_current_actor),
                  db: Session = Depends(get_db)):
    return match_service.submit_report(
        db,
        match_id,
        actor,
        kills=payload.kills,
        placement=payload.placement,
        points=payload.points,
        evidence_url=payload.evidence_url,
        participant_id=payload.participant_id,
    )


@router.get("/{match_id}/reports", response_model=List[ReportOut])
def list_reports(match_id: str, db: Session = Depends(get_db)):
    match_service.get_or_404(db, match_id)
    return match_service.get_reports(db, match_id)
