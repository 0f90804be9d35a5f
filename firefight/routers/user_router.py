from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from firefight.auth import Actor, get_current_actor
from firefight.database import get_db
from firefight.schemas import UserCreate, UserOut, ParticipantOut, TeamOut
from firefight.services import user_service, team_service
from firefight.services.tournament_service import get_user_participations

router = APIRouter(prefix="/api")


@router.post("/users", response_model=UserOut)
def register_user(payload: UserCreate, db: Session = Depends(get_db)):
    return user_service.create(db, payload.email, payload.username)


@router.get("/auth/user", response_model=UserOut)
def current_user(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return user_service.get_or_404(db, actor.user_id)


@router.get("/user/tournaments", response_model=List[ParticipantOut])
def my_tournaments(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return get_user_participations(db, actor.user_id)


@router.get("/user/teams", response_model=List[TeamOut])
def my_teams(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return team_service.get_user_teams(db, actor.user_id)
