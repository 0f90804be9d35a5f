import logging
from datetime import timezone
from decimal import Decimal

from sqlalchemy import or_
from sqlalchemy.orm import Session

from firefight.auth import Actor, require_admin
from firefight.errors import ValidationError, NotFoundError
from firefight.events import relay
from firefight.models.tournament import Tournament, TournamentParticipant, STATUS_TRANSITIONS
from firefight.services import registration_service
from firefight.services.wallet_service import to_money

logger = logging.getLogger(__name__)


def get_by_id(db: Session, tournament_id: str):
    return db.query(Tournament).filter(Tournament.id == tournament_id).first()


def get_or_404(db: Session, tournament_id: str) -> Tournament:
    tournament = get_by_id(db, tournament_id)
    if not tournament:
        raise NotFoundError(f"Tournament {tournament_id} not found")
    return tournament


def get_all(db: Session, limit: int = 20, offset: int = 0):
    return (
        db.query(Tournament)
        .order_by(Tournament.created_at.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )


def get_upcoming(db: Session, limit: int = 10):
    return (
        db.query(Tournament)
        .filter(Tournament.status == "upcoming")
        .order_by(Tournament.start_time.asc())
        .limit(limit)
        .all()
    )


def get_live(db: Session, limit: int = 10):
    return (
        db.query(Tournament)
        .filter(Tournament.status == "live")
        .order_by(Tournament.start_time.desc())
        .limit(limit)
        .all()
    )


def get_featured(db: Session, limit: int = 8):
    return (
        db.query(Tournament)
        .filter(or_(Tournament.status == "upcoming", Tournament.status == "live"))
        .order_by(Tournament.prize_pool.desc())
        .limit(limit)
        .all()
    )


def get_participants(db: Session, tournament_id: str):
    return (
        db.query(TournamentParticipant)
        .filter(TournamentParticipant.tournament_id == tournament_id)
        .order_by(TournamentParticipant.registration_time)
        .all()
    )


def get_user_participations(db: Session, user_id: str):
    """Participations paid for by, or registered to, the user."""
    return (
        db.query(TournamentParticipant)
        .filter(or_(
            TournamentParticipant.user_id == user_id,
            TournamentParticipant.payer_id == user_id,
        ))
        .order_by(TournamentParticipant.registration_time.desc())
        .all()
    )


def normalize_prize_distribution(entries, prize_pool: Decimal):
    """Validate ``[{position, percentage | amount}]`` and return it sorted by position."""
    if not entries:
        return None

    normalized = []
    positions = set()
    percentage_total = Decimal("0")
    amount_total = Decimal("0")

    for entry in entries:
        position = entry.get("position")
        if not isinstance(position, int) or position < 1:
            raise ValidationError("Prize positions must be integers starting at 1")
        if position in positions:
            raise ValidationError(f"Prize position {position} is listed twice")
        positions.add(position)

        has_amount = entry.get("amount") is not None
        has_percentage = entry.get("percentage") is not None
        if has_amount == has_percentage:
            raise ValidationError(f"Prize position {position} needs exactly one of amount or percentage")

        if has_amount:
            amount = to_money(entry["amount"])
            if amount < 0:
                raise ValidationError("Prize amounts cannot be negative")
            amount_total += amount
            normalized.append({"position": position, "amount": str(amount)})
        else:
            percentage = Decimal(str(entry["percentage"]))
            if percentage < 0:
                raise ValidationError("Prize percentages cannot be negative")
            percentage_total += percentage
            normalized.append({"position": position, "percentage": str(percentage)})

    if percentage_total > 100:
        raise ValidationError("Prize percentages add up to more than 100")
    if amount_total + prize_pool * percentage_total / 100 > prize_pool:
        raise ValidationError("Prize distribution exceeds the prize pool")

    return sorted(normalized, key=lambda e: e["position"])


def payout_for_placement(tournament: Tournament, placement: int):
    """Prize owed for a final placement, or None when the placement pays nothing."""
    for entry in tournament.prize_distribution or []:
        if entry["position"] != placement:
            continue
        if entry.get("amount") is not None:
            amount = to_money(entry["amount"])
        else:
            amount = to_money(to_money(tournament.prize_pool) * Decimal(entry["percentage"]) / 100)
        return amount if amount > 0 else None
    return None


def _naive_utc(value):
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def create(db: Session, admin: Actor, title: str, game: str, entry_fee, prize_pool,
           max_participants: int, start_time, registration_deadline=None, end_time=None,
           prize_distribution=None, **details):
    require_admin(admin)

    title = (title or "").strip()
    if not title or not (game or "").strip():
        raise ValidationError("Title and game are required")
    entry_fee = to_money(entry_fee)
    prize_pool = to_money(prize_pool)
    if entry_fee < 0 or prize_pool < 0:
        raise ValidationError("Entry fee and prize pool cannot be negative")
    if max_participants < 1:
        raise ValidationError("max_participants must be at least 1")

    start_time = _naive_utc(start_time)
    end_time = _naive_utc(end_time)
    registration_deadline = _naive_utc(registration_deadline) or start_time
    if registration_deadline > start_time:
        raise ValidationError("Registration must close before the tournament starts")
    if end_time is not None and end_time <= start_time:
        raise ValidationError("end_time must be after start_time")

    tournament = Tournament(
        title=title,
        game=game.strip(),
        entry_fee=entry_fee,
        prize_pool=prize_pool,
        prize_distribution=normalize_prize_distribution(prize_distribution, prize_pool),
        max_participants=max_participants,
        current_participants=0,
        start_time=start_time,
        registration_deadline=registration_deadline,
        end_time=end_time,
        status="upcoming",
        host_id=admin.user_id,
        **details,
    )
    db.add(tournament)
    db.commit()
    db.refresh(tournament)

    logger.info(f"Admin {admin.user_id} created tournament {tournament.id} ({tournament.title})")
    relay.publish("tournament_created", {
        "tournament_id": tournament.id,
        "title": tournament.title,
        "game": tournament.game,
    })
    return tournament


def update_status(db: Session, admin: Actor, tournament_id: str, status: str):
    require_admin(admin)
    tournament = get_or_404(db, tournament_id)

    if status not in STATUS_TRANSITIONS:
        raise ValidationError(f"Unknown tournament status: {status}")
    if status not in STATUS_TRANSITIONS[tournament.status]:
        raise ValidationError(f"Cannot move tournament from {tournament.status} to {status}")

    if status == "cancelled":
        registration_service.release_all(db, tournament)

    tournament.status = status
    db.commit()
    db.refresh(tournament)

    logger.info(f"Tournament {tournament.id} is now {status}")
    if status == "live":
        relay.publish("tournament_started", {
            "tournament_id": tournament.id,
            "title": tournament.title,
        })
    return tournament


def remove_participant(db: Session, admin: Actor, tournament_id: str, participant_id: str):
    require_admin(admin)
    tournament = get_or_404(db, tournament_id)
    participant = (
        db.query(TournamentParticipant)
        .filter(TournamentParticipant.id == participant_id)
        .filter(TournamentParticipant.tournament_id == tournament.id)
        .first()
    )
    if not participant:
        raise NotFoundError(f"Participant {participant_id} not found")

    registration_service.release(db, participant, reason="Removed by admin")
    db.commit()
    db.refresh(participant)
    logger.info(f"Admin {admin.user_id} removed participant {participant_id} from {tournament_id}")
    return participant
