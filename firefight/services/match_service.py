import logging

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from firefight.auth import Actor, require_admin, require_active
from firefight.database import utcnow
from firefight.errors import ValidationError, NotFoundError, Unauthorized, AlreadyVerified
from firefight.events import relay
from firefight.models.match import Match, MatchReport, MATCH_TRANSITIONS
from firefight.models.team import Team, TeamMember
from firefight.models.tournament import Tournament, TournamentParticipant
from firefight.models.wallet import WalletTransaction
from firefight.services import wallet_service
from firefight.services.tournament_service import payout_for_placement

logger = logging.getLogger(__name__)

DECISIONS = {"approve": "approved", "reject": "rejected"}


def get_by_id(db: Session, match_id: str):
    return db.query(Match).filter(Match.id == match_id).first()


def get_or_404(db: Session, match_id: str) -> Match:
    match = get_by_id(db, match_id)
    if not match:
        raise NotFoundError(f"Match {match_id} not found")
    return match


def get_by_tournament(db: Session, tournament_id: str):
    return (
        db.query(Match)
        .filter(Match.tournament_id == tournament_id)
        .order_by(Match.match_number)
        .all()
    )


def get_live(db: Session, limit: int = 10):
    return (
        db.query(Match)
        .filter(Match.status == "live")
        .order_by(Match.start_time.desc())
        .limit(limit)
        .all()
    )


def get_reports(db: Session, match_id: str):
    return (
        db.query(MatchReport)
        .filter(MatchReport.match_id == match_id)
        .order_by(MatchReport.submitted_at.desc())
        .all()
    )


def get_pending_reports(db: Session, admin: Actor):
    require_admin(admin)
    return (
        db.query(MatchReport)
        .filter(MatchReport.verification_status == "pending")
        .order_by(MatchReport.submitted_at.asc())
        .all()
    )


def create(db: Session, admin: Actor, tournament_id: str, start_time=None):
    require_admin(admin)
    tournament = db.query(Tournament).filter(Tournament.id == tournament_id).first()
    if not tournament:
        raise NotFoundError(f"Tournament {tournament_id} not found")
    if tournament.status in ("completed", "cancelled"):
        raise ValidationError(f"Tournament is {tournament.status}")

    last = (
        db.query(func.max(Match.match_number))
        .filter(Match.tournament_id == tournament_id)
        .scalar()
    )
    match = Match(
        tournament_id=tournament_id,
        match_number=(last or 0) + 1,
        start_time=start_time,
        status="scheduled",
    )
    db.add(match)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("Match number already taken, try again")
    db.refresh(match)
    return match


def update_match(db: Session, admin: Actor, match_id: str, status: str = None,
                 winner_user_id: str = None, winner_team_id: str = None, results=None):
    require_admin(admin)
    match = get_or_404(db, match_id)

    if winner_user_id and winner_team_id:
        raise ValidationError("A match has either a user or a team winner")
    if winner_user_id or winner_team_id:
        winner = (
            db.query(TournamentParticipant)
            .filter(TournamentParticipant.tournament_id == match.tournament_id)
            .filter(TournamentParticipant.payment_status == "paid")
        )
        if winner_user_id:
            winner = winner.filter(TournamentParticipant.user_id == winner_user_id)
        else:
            winner = winner.filter(TournamentParticipant.team_id == winner_team_id)
        if not winner.first():
            raise ValidationError("Winner is not a participant of this tournament")
        match.winner_user_id = winner_user_id
        match.winner_team_id = winner_team_id

    if results is not None:
        match.results = results

    if status and status != match.status:
        if status not in MATCH_TRANSITIONS:
            raise ValidationError(f"Unknown match status: {status}")
        if status not in MATCH_TRANSITIONS[match.status]:
            raise ValidationError(f"Cannot move match from {match.status} to {status}")
        match.status = status
        if status == "live" and match.start_time is None:
            match.start_time = utcnow()
        if status == "completed":
            match.end_time = utcnow()

    db.commit()
    db.refresh(match)

    if match.status == "completed" and status == "completed":
        logger.info(f"Match {match.id} completed")
        relay.publish("match_result", {
            "match_id": match.id,
            "tournament_id": match.tournament_id,
            "winner_user_id": match.winner_user_id,
            "winner_team_id": match.winner_team_id,
        })
    return match


def _acting_participant(db: Session, match: Match, actor: Actor, participant_id: str = None):
    """Paid participant of the match's tournament that ``actor`` may report for."""
    team_ids = [
        m.team_id for m in db.query(TeamMember).filter(TeamMember.user_id == actor.user_id).all()
    ]
    query = (
        db.query(TournamentParticipant)
        .filter(TournamentParticipant.tournament_id == match.tournament_id)
        .filter(TournamentParticipant.payment_status == "paid")
    )
    if participant_id:
        query = query.filter(TournamentParticipant.id == participant_id)

    for participant in query.all():
        if participant.user_id == actor.user_id or participant.team_id in team_ids:
            return participant
    raise Unauthorized("Not a participant of this tournament")


def submit_report(db: Session, match_id: str, actor: Actor, kills: int, placement: int,
                  points: int, evidence_url: str = None, participant_id: str = None):
    """Queue a result for admin verification. Standings are untouched until approval."""
    require_active(actor)
    match = get_or_404(db, match_id)
    tournament = db.query(Tournament).filter(Tournament.id == match.tournament_id).first()
    if tournament.status == "cancelled":
        raise ValidationError("Tournament was cancelled")

    if kills < 0 or points < 0:
        raise ValidationError("Kills and points cannot be negative")
    if placement < 1:
        raise ValidationError("Placement starts at 1")

    participant = _acting_participant(db, match, actor, participant_id)

    # one live report per participant and match; a rejected one may be resubmitted
    existing = (
        db.query(MatchReport)
        .filter(MatchReport.match_id == match.id)
        .filter(MatchReport.participant_id == participant.id)
        .filter(MatchReport.verification_status.in_(("pending", "approved")))
        .first()
    )
    if existing:
        raise ValidationError(f"A result for this match is already {existing.verification_status}")

    report = MatchReport(
        match_id=match.id,
        participant_id=participant.id,
        reporter_id=actor.user_id,
        kills=kills,
        placement=placement,
        points=points,
        evidence_url=evidence_url,
        verification_status="pending",
    )
    db.add(report)
    db.commit()
    db.refresh(report)
    return report


def _prize_recipient(db: Session, participant: TournamentParticipant) -> str:
    if participant.user_id:
        return participant.user_id
    team = db.query(Team).filter(Team.id == participant.team_id).first()
    return team.captain_id if team else participant.payer_id


def _placement_paid(db: Session, tournament_id: str, participant_id: str, placement: int) -> bool:
    """Whether this participant was already paid for this placement in the tournament."""
    return db.query(WalletTransaction.id).join(
        MatchReport, MatchReport.id == WalletTransaction.match_report_id
    ).filter(
        WalletTransaction.type == "prize",
        WalletTransaction.tournament_id == tournament_id,
        WalletTransaction.participant_id == participant_id,
        MatchReport.placement == placement,
    ).first() is not None


def verify_report(db: Session, report_id: str, admin: Actor, decision: str, notes: str = None):
    """Approve or reject a pending report.

    Approval pays the placement's prize, if any, and only to a participant
    still ``paid`` in a tournament that was not cancelled. The status flip
    is a conditional UPDATE on ``pending``; the prize check and insert run
    under the recipient's wallet lock in the same transaction, and the
    prize row is unique per report. Two concurrent approvals pay at most
    once, and a placement is paid to a participant at most once.
    """
    require_admin(admin)
    if decision not in DECISIONS:
        raise ValidationError("Decision must be 'approve' or 'reject'")

    report = db.query(MatchReport).filter(MatchReport.id == report_id).first()
    if not report:
        raise NotFoundError(f"Report {report_id} not found")

    match = get_or_404(db, report.match_id)
    tournament = db.query(Tournament).filter(Tournament.id == match.tournament_id).first()
    participant = (
        db.query(TournamentParticipant)
        .filter(TournamentParticipant.id == report.participant_id)
        .first()
    )
    if decision == "approve":
        if tournament.status == "cancelled":
            raise ValidationError("Tournament was cancelled; reject the report instead")
        if participant.payment_status != "paid":
            raise ValidationError(f"Participant is {participant.payment_status}; reject the report instead")

    result = db.execute(
        update(MatchReport)
        .where(MatchReport.id == report.id)
        .where(MatchReport.verification_status == "pending")
        .values(
            verification_status=DECISIONS[decision],
            admin_notes=notes,
            verified_by=admin.user_id,
            verified_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        raise AlreadyVerified(f"Report {report_id} was already verified")

    prize = None
    if decision == "approve":
        amount = payout_for_placement(tournament, report.placement)
        if amount is not None:
            recipient = _prize_recipient(db, participant)
            wallet_service.lock_wallet(db, recipient)
            if _placement_paid(db, tournament.id, participant.id, report.placement):
                logger.info(
                    f"Placement #{report.placement} already paid to {participant.id}, "
                    f"report {report.id} approved without prize"
                )
            else:
                prize = wallet_service.credit(
                    db,
                    recipient,
                    amount,
                    "prize",
                    commit=False,
                    tournament_id=tournament.id,
                    participant_id=participant.id,
                    match_report_id=report.id,
                    description=f"Prize for placement #{report.placement} in {tournament.title}",
                )

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AlreadyVerified(f"Report {report_id} was already paid out")

    db.refresh(report)
    logger.info(f"Admin {admin.user_id} {DECISIONS[decision]} report {report.id}")

    if decision == "approve":
        payload = {
            "match_id": report.match_id,
            "report_id": report.id,
            "participant_id": report.participant_id,
            "placement": report.placement,
            "points": report.points,
            "kills": report.kills,
        }
        if prize is not None:
            logger.info(f"Prize {prize.amount} paid to {prize.user_id} for report {report.id}")
            payload["user_id"] = prize.user_id
            payload["prize"] = str(prize.amount)
        relay.publish("match_result", payload)
    return report
