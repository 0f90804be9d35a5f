from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from firefight.database import get_db
from firefight.services.ranking_service import get_top_earners, get_recent_winners

router = APIRouter(prefix="/api/leaderboard")


@router.get("")
def leaderboard(limit: int = Query(20, ge=1, le=100), db: Session = Depends(get_db)):
    return get_top_earners(db, limit)


@router.get("/winners")
def recent_winners(db: Session = Depends(get_db)):
    return get_recent_winners(db)
