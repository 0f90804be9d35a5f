"""
Registration and payment gate.

Joining a tournament is one unit of work: the participant row, the
entry-fee debit and the slot all commit together or not at all. The slot
is claimed with a conditional UPDATE on the tournament row, so the
capacity check and the increment are a single statement and concurrent
registrations can never push ``current_participants`` past
``max_participants``.

``current_participants`` counts participants whose payment is ``paid``;
only this module moves it.
"""

import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from firefight.auth import Actor, require_active
from firefight.config import settings
from firefight.database import utcnow
from firefight.errors import (
    ArenaError,
    ValidationError,
    NotFoundError,
    Unauthorized,
    CapacityExceeded,
    DuplicateRegistration,
    RegistrationClosed,
)
from firefight.events import relay
from firefight.models.team import Team
from firefight.models.tournament import Tournament, TournamentParticipant
from firefight.models.wallet import WalletTransaction
from firefight.services import wallet_service

logger = logging.getLogger(__name__)


def _load_tournament(db: Session, tournament_id: str) -> Tournament:
    tournament = db.query(Tournament).filter(Tournament.id == tournament_id).first()
    if not tournament:
        raise NotFoundError(f"Tournament {tournament_id} not found")
    return tournament


def _check_open(tournament: Tournament, now) -> None:
    if tournament.status != "upcoming":
        raise RegistrationClosed(f"Tournament is {tournament.status}")
    if now >= tournament.registration_deadline:
        raise RegistrationClosed("Registration deadline has passed")


def _check_duplicate(db: Session, tournament: Tournament, user_id: str = None, team_id: str = None):
    query = (
        db.query(TournamentParticipant)
        .filter(TournamentParticipant.tournament_id == tournament.id)
        .filter(TournamentParticipant.payment_status != "failed")
    )
    if team_id:
        query = query.filter(TournamentParticipant.team_id == team_id)
    else:
        query = query.filter(TournamentParticipant.user_id == user_id)

    if query.first():
        raise DuplicateRegistration("Already registered for this tournament")


def claim_slot(db: Session, tournament_id: str) -> None:
    """Increment ``current_participants`` only while it is below capacity."""
    result = db.execute(
        update(Tournament)
        .where(Tournament.id == tournament_id)
        .where(Tournament.current_participants < Tournament.max_participants)
        .values(current_participants=Tournament.current_participants + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise CapacityExceeded("Tournament is full")


def release_slot(db: Session, tournament_id: str) -> None:
    db.execute(
        update(Tournament)
        .where(Tournament.id == tournament_id)
        .where(Tournament.current_participants > 0)
        .values(current_participants=Tournament.current_participants - 1)
        .execution_options(synchronize_session=False)
    )


def entry_transaction(db: Session, participant_id: str):
    """The entry-fee debit of a participant, if the tournament had a fee."""
    return (
        db.query(WalletTransaction)
        .filter(WalletTransaction.participant_id == participant_id)
        .filter(WalletTransaction.type == "entry_fee")
        .first()
    )


def register(db: Session, tournament_id: str, actor: Actor, team_id: str = None,
             settle_now: bool = None) -> TournamentParticipant:
    """Register ``actor`` (or the team it captains) for a tournament.

    With ``settle_now`` (the default under ``ENTRY_FEE_SETTLEMENT=wallet``)
    the entry fee is taken from the wallet and the slot claimed in the same
    transaction. Otherwise the fee stays a pending reservation until
    ``confirm_payment`` or ``fail_payment`` is called for it.

    Any failure rolls the whole unit back: no participant, no debit, no slot.
    """
    require_active(actor)
    if settle_now is None:
        settle_now = settings.entry_fee_settlement == "wallet"

    try:
        # serializes this payer's wallet and registrations from here on
        wallet_service.lock_wallet(db, actor.user_id)

        tournament = _load_tournament(db, tournament_id)
        _check_open(tournament, utcnow())

        if team_id:
            team = db.query(Team).filter(Team.id == team_id).first()
            if not team:
                raise NotFoundError(f"Team {team_id} not found")
            if team.captain_id != actor.user_id:
                raise Unauthorized("Only the team captain can register the team")

        if tournament.current_participants >= tournament.max_participants:
            raise CapacityExceeded("Tournament is full")
        _check_duplicate(db, tournament, user_id=actor.user_id, team_id=team_id)

        participant = TournamentParticipant(
            tournament_id=tournament.id,
            user_id=None if team_id else actor.user_id,
            team_id=team_id,
            payer_id=actor.user_id,
            payment_status="pending",
        )
        db.add(participant)
        db.flush()

        fee = wallet_service.to_money(tournament.entry_fee)
        txn = None
        if fee > 0:
            txn = wallet_service.debit(
                db,
                actor.user_id,
                fee,
                "entry_fee",
                status="pending",
                commit=False,
                tournament_id=tournament.id,
                participant_id=participant.id,
                description=f"Entry fee: {tournament.title}",
            )

        if txn is None or settle_now:
            # re-checked here, at commit time, against concurrent registrations
            claim_slot(db, tournament.id)
            participant.payment_status = "paid"
            if txn is not None:
                wallet_service.settle(db, txn, "completed")

        db.commit()
    except ArenaError as exc:
        db.rollback()
        logger.info(f"Registration of {actor.user_id} for {tournament_id} rejected: {exc.code}")
        raise

    db.refresh(participant)
    logger.info(
        f"Registered {team_id or actor.user_id} for {tournament_id} "
        f"(payment {participant.payment_status})"
    )
    if txn is not None and participant.payment_status == "paid":
        _publish_payment(txn, participant)
    return participant


def confirm_payment(db: Session, transaction_id: str) -> TournamentParticipant:
    """Payment processor confirmed a pending entry fee.

    The slot is claimed now. If it was lost in the meantime, the
    reservation and the participant are both failed before
    CapacityExceeded is raised, so no debit outlives the registration.
    """
    txn = wallet_service.get_or_404(db, transaction_id)
    if txn.type != "entry_fee" or txn.participant_id is None:
        raise ValidationError(f"Transaction {txn.id} is not an entry fee")

    participant = (
        db.query(TournamentParticipant)
        .filter(TournamentParticipant.id == txn.participant_id)
        .first()
    )
    if txn.status == "pending":
        wallet_service.lock_wallet(db, txn.user_id)
        # a concurrent callback may have settled it while we waited for the lock
        db.refresh(txn)
    if txn.status != "pending":
        db.rollback()
        if txn.status == "failed":
            raise ValidationError(f"Transaction {txn.id} has already failed")
        return participant

    tournament = _load_tournament(db, txn.tournament_id)
    try:
        if tournament.status != "upcoming":
            raise RegistrationClosed(f"Tournament is {tournament.status}")
        claim_slot(db, tournament.id)
    except (CapacityExceeded, RegistrationClosed) as exc:
        wallet_service.settle(db, txn, "failed")
        participant.payment_status = "failed"
        db.commit()
        logger.info(f"Payment {txn.id} confirmed but registration lost: {exc.code}")
        raise

    wallet_service.settle(db, txn, "completed")
    participant.payment_status = "paid"
    db.commit()
    db.refresh(participant)
    db.refresh(txn)

    logger.info(f"Payment {txn.id} confirmed for participant {participant.id}")
    _publish_payment(txn, participant)
    return participant


def fail_payment(db: Session, transaction_id: str) -> TournamentParticipant:
    """Payment processor rejected a pending entry fee; release the reservation."""
    txn = wallet_service.get_or_404(db, transaction_id)
    if txn.type != "entry_fee" or txn.participant_id is None:
        raise ValidationError(f"Transaction {txn.id} is not an entry fee")

    participant = (
        db.query(TournamentParticipant)
        .filter(TournamentParticipant.id == txn.participant_id)
        .first()
    )
    if txn.status == "pending":
        wallet_service.lock_wallet(db, txn.user_id)
        db.refresh(txn)
    if txn.status != "pending":
        db.rollback()
        if txn.status == "completed":
            raise ValidationError(f"Transaction {txn.id} is already completed")
        return participant

    wallet_service.settle(db, txn, "failed")
    participant.payment_status = "failed"
    db.commit()
    db.refresh(participant)

    logger.info(f"Payment {txn.id} failed for participant {participant.id}")
    return participant


def release(db: Session, participant: TournamentParticipant, reason: str = None) -> None:
    """Give back a participant's slot and money. Does not commit.

    A paid entry fee is refunded through the ledger; a pending one is failed.
    """
    if participant.payment_status not in ("pending", "paid"):
        raise ValidationError(f"Participant is already {participant.payment_status}")

    txn = entry_transaction(db, participant.id)
    if participant.payment_status == "paid":
        if txn is not None and txn.status == "completed":
            wallet_service.refund(db, txn.id, reason=reason, commit=False)
        participant.payment_status = "refunded"
        release_slot(db, participant.tournament_id)
    else:
        if txn is not None and txn.status == "pending":
            wallet_service.lock_wallet(db, txn.user_id)
            wallet_service.settle(db, txn, "failed")
        participant.payment_status = "failed"
    db.flush()


def release_all(db: Session, tournament: Tournament) -> int:
    """Release every active participant of a tournament. Does not commit."""
    participants = (
        db.query(TournamentParticipant)
        .filter(TournamentParticipant.tournament_id == tournament.id)
        .filter(TournamentParticipant.payment_status.in_(("pending", "paid")))
        .all()
    )
    for participant in participants:
        release(db, participant, reason=f"Tournament cancelled: {tournament.title}")
    logger.info(f"Released {len(participants)} participants of {tournament.id}")
    return len(participants)


def _publish_payment(txn: WalletTransaction, participant: TournamentParticipant) -> None:
    relay.publish("payment_received", {
        "user_id": txn.user_id,
        "transaction_id": txn.id,
        "type": "entry_fee",
        "amount": str(-wallet_service.to_money(txn.amount)),
        "tournament_id": participant.tournament_id,
        "participant_id": participant.id,
    })
