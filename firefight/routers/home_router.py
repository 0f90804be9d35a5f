from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from firefight.database import get_db
from firefight.services.ranking_service import get_dashboard_stats

router = APIRouter(prefix="/api")


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/stats/dashboard")
def dashboard_stats(db: Session = Depends(get_db)):
    return get_dashboard_stats(db)
