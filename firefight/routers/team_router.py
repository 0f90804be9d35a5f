from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from firefight.auth import Actor, get_current_actor
from firefight.database import get_db
from firefight.schemas import TeamCreate, TeamJoinRequest, TeamOut, TeamDetailOut, TeamMemberOut
from firefight.services import team_service

router = APIRouter(prefix="/api/teams")


@router.post("", response_model=TeamOut)
def create_team(payload: TeamCreate, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return team_service.create(db, actor, payload.name, payload.tag, payload.max_players)


@router.post("/join", response_model=TeamMemberOut)
def join_team(payload: TeamJoinRequest, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return team_service.join(db, actor, payload.join_code)


@router.get("/{team_id}", response_model=TeamDetailOut)
def get_team(team_id: str, db: Session = Depends(get_db)):
    team = team_service.get_or_404(db, team_id)
    return TeamDetailOut(
        **TeamOut.model_validate(team).model_dump(),
        members=[TeamMemberOut.model_validate(m) for m in team_service.get_members(db, team_id)],
    )


@router.post("/{team_id}/leave")
def leave_team(team_id: str, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    team_service.leave(db, actor, team_id)
    return {"success": True}


@router.delete("/{team_id}/members/{user_id}")
def remove_member(team_id: str, user_id: str, actor: Actor = Depends(get_current_actor),
                  db: Session = Depends(get_db)):
    team_service.remove_member(db, actor, team_id, user_id)
    return {"success": True}


@router.delete("/{team_id}")
def delete_team(team_id: str, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    team_service.delete(db, actor, team_id)
    return {"success": True}
