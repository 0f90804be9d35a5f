import logging
import secrets
import string

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from firefight.auth import Actor, require_active
from firefight.errors import ValidationError, NotFoundError, Unauthorized, DuplicateRegistration
from firefight.models.team import Team, TeamMember
from firefight.models.tournament import TournamentParticipant
from firefight.services import user_service

logger = logging.getLogger(__name__)

JOIN_CODE_LENGTH = 8
JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_join_code() -> str:
    return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(JOIN_CODE_LENGTH))


def get_by_id(db: Session, team_id: str):
    return db.query(Team).filter(Team.id == team_id).first()


def get_or_404(db: Session, team_id: str) -> Team:
    team = get_by_id(db, team_id)
    if not team:
        raise NotFoundError(f"Team {team_id} not found")
    return team


def get_members(db: Session, team_id: str):
    return (
        db.query(TeamMember)
        .filter(TeamMember.team_id == team_id)
        .order_by(TeamMember.joined_at)
        .all()
    )


def get_membership(db: Session, team_id: str, user_id: str):
    return (
        db.query(TeamMember)
        .filter(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
        .first()
    )


def get_user_teams(db: Session, user_id: str):
    return (
        db.query(Team)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .filter(TeamMember.user_id == user_id)
        .order_by(Team.created_at.desc())
        .all()
    )


def create(db: Session, captain: Actor, name: str, tag: str = None, max_players: int = 4):
    """Create a team; the creator becomes its captain."""
    require_active(captain)
    name = (name or "").strip()
    if not name:
        raise ValidationError("Team name is required")
    if max_players < 1:
        raise ValidationError("A team needs room for at least one player")
    user_service.get_or_404(db, captain.user_id)

    # retry on the (unlikely) join code collision
    for _ in range(5):
        team = Team(
            name=name,
            tag=tag,
            captain_id=captain.user_id,
            max_players=max_players,
            join_code=generate_join_code(),
        )
        team.members.append(TeamMember(user_id=captain.user_id, role="captain"))
        db.add(team)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            continue
        db.refresh(team)
        logger.info(f"User {captain.user_id} created team {team.id} ({team.name})")
        return team

    raise ValidationError("Could not allocate a join code, try again")


def join(db: Session, actor: Actor, join_code: str):
    require_active(actor)
    code = (join_code or "").strip().upper()
    team = db.query(Team).filter(Team.join_code == code).first()
    if not team:
        raise NotFoundError("No team with that join code")

    if get_membership(db, team.id, actor.user_id):
        raise DuplicateRegistration("Already a member of this team")
    if len(get_members(db, team.id)) >= team.max_players:
        raise ValidationError("Team is full")

    member = TeamMember(team_id=team.id, user_id=actor.user_id, role="player")
    db.add(member)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateRegistration("Already a member of this team")
    db.refresh(member)
    return member


def leave(db: Session, actor: Actor, team_id: str):
    team = get_or_404(db, team_id)
    membership = get_membership(db, team.id, actor.user_id)
    if not membership:
        raise NotFoundError("Not a member of this team")
    if membership.role == "captain":
        raise ValidationError("The captain cannot leave; delete the team instead")

    db.delete(membership)
    db.commit()


def remove_member(db: Session, actor: Actor, team_id: str, user_id: str):
    team = get_or_404(db, team_id)
    if team.captain_id != actor.user_id:
        raise Unauthorized("Only the captain can remove members")
    if user_id == team.captain_id:
        raise ValidationError("The captain cannot be removed")

    membership = get_membership(db, team.id, user_id)
    if not membership:
        raise NotFoundError("User is not a member of this team")

    db.delete(membership)
    db.commit()


def delete(db: Session, actor: Actor, team_id: str):
    team = get_or_404(db, team_id)
    if team.captain_id != actor.user_id:
        raise Unauthorized("Only the captain can delete the team")

    # participations are referenced by the ledger and must outlive the team
    entered = (
        db.query(TournamentParticipant)
        .filter(TournamentParticipant.team_id == team.id)
        .first()
    )
    if entered:
        raise ValidationError("Team has tournament entries and cannot be deleted")

    db.delete(team)
    db.commit()
    logger.info(f"Team {team_id} deleted by captain {actor.user_id}")
