"""
tests/test_registration.py - Registration gate, payment settlement, capacity.
"""

import threading
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from firefight.auth import Actor, actor_for
from firefight.database import make_engine, init_db, utcnow
from firefight.errors import (
    CapacityExceeded,
    DuplicateRegistration,
    InsufficientFunds,
    RegistrationClosed,
    Unauthorized,
    ValidationError,
)
from firefight.models.tournament import Tournament, TournamentParticipant
from firefight.models.user import User
from firefight.models.wallet import WalletTransaction
from firefight.services import registration_service, team_service, tournament_service, wallet_service


def _transactions(db, user_id, type_=None):
    query = db.query(WalletTransaction).filter(WalletTransaction.user_id == user_id)
    if type_:
        query = query.filter(WalletTransaction.type == type_)
    return query.all()


def _paid_count(db, tournament_id):
    return (
        db.query(TournamentParticipant)
        .filter(TournamentParticipant.tournament_id == tournament_id)
        .filter(TournamentParticipant.payment_status == "paid")
        .count()
    )


class TestWalletSettlement:
    def test_paid_registration_debits_and_claims_slot(self, db, make_user, make_tournament, events):
        user = make_user(balance=500)
        tournament = make_tournament(entry_fee=100)

        participant = registration_service.register(db, tournament.id, actor_for(user))

        assert participant.payment_status == "paid"
        assert participant.user_id == user.id
        db.refresh(tournament)
        assert tournament.current_participants == 1

        [fee] = _transactions(db, user.id, "entry_fee")
        assert fee.status == "completed"
        assert fee.amount == Decimal("-100.00")
        assert fee.participant_id == participant.id
        assert wallet_service.settled_balance(db, user.id) == Decimal("400.00")
        assert ("payment_received", {
            "user_id": user.id,
            "transaction_id": fee.id,
            "type": "entry_fee",
            "amount": "100.00",
            "tournament_id": tournament.id,
            "participant_id": participant.id,
        }) in events

    def test_insufficient_funds_creates_nothing(self, db, make_user, make_tournament):
        user = make_user(balance=50)
        tournament = make_tournament(entry_fee=100)

        with pytest.raises(InsufficientFunds):
            registration_service.register(db, tournament.id, actor_for(user))

        assert _transactions(db, user.id, "entry_fee") == []
        assert db.query(TournamentParticipant).count() == 0
        db.refresh(tournament)
        assert tournament.current_participants == 0

    def test_free_tournament_needs_no_balance(self, db, make_user, make_tournament):
        user = make_user()
        tournament = make_tournament(entry_fee=0)

        participant = registration_service.register(db, tournament.id, actor_for(user))

        assert participant.payment_status == "paid"
        assert _transactions(db, user.id) == []
        db.refresh(tournament)
        assert tournament.current_participants == 1

    def test_duplicate_registration(self, db, make_user, make_tournament):
        user = make_user(balance=500)
        tournament = make_tournament()
        registration_service.register(db, tournament.id, actor_for(user))

        with pytest.raises(DuplicateRegistration):
            registration_service.register(db, tournament.id, actor_for(user))
        assert len(_transactions(db, user.id, "entry_fee")) == 1

    def test_full_tournament(self, db, make_user, make_tournament):
        first, second = make_user(balance=500), make_user(balance=500)
        tournament = make_tournament(max_participants=1)
        registration_service.register(db, tournament.id, actor_for(first))

        with pytest.raises(CapacityExceeded):
            registration_service.register(db, tournament.id, actor_for(second))
        assert _transactions(db, second.id, "entry_fee") == []

    def test_deadline_passed(self, db, make_user, make_tournament):
        user = make_user(balance=500)
        now = utcnow()
        tournament = make_tournament(
            start_time=now + timedelta(hours=1),
            registration_deadline=now - timedelta(minutes=5),
        )

        with pytest.raises(RegistrationClosed):
            registration_service.register(db, tournament.id, actor_for(user))

    def test_not_upcoming(self, db, make_user, make_tournament, admin):
        user = make_user(balance=500)
        tournament = make_tournament()
        tournament_service.update_status(db, admin, tournament.id, "live")

        with pytest.raises(RegistrationClosed):
            registration_service.register(db, tournament.id, actor_for(user))

    def test_banned_user(self, db, make_user, make_tournament):
        user = make_user(balance=500)
        tournament = make_tournament()

        with pytest.raises(Unauthorized):
            registration_service.register(db, tournament.id, Actor(user.id, is_banned=True))


class TestTeamRegistration:
    def test_captain_registers_team_and_pays(self, db, make_user, make_tournament):
        captain = make_user(balance=500)
        team = team_service.create(db, actor_for(captain), "Night Owls", "NO")
        tournament = make_tournament()

        participant = registration_service.register(
            db, tournament.id, actor_for(captain), team_id=team.id
        )

        assert participant.team_id == team.id
        assert participant.user_id is None
        assert participant.payer_id == captain.id
        assert wallet_service.settled_balance(db, captain.id) == Decimal("400.00")

    def test_member_cannot_register_team(self, db, make_user, make_tournament):
        captain, member = make_user(), make_user(balance=500)
        team = team_service.create(db, actor_for(captain), "Night Owls")
        team_service.join(db, actor_for(member), team.join_code)
        tournament = make_tournament()

        with pytest.raises(Unauthorized):
            registration_service.register(db, tournament.id, actor_for(member), team_id=team.id)

    def test_team_registers_once(self, db, make_user, make_tournament):
        captain = make_user(balance=500)
        team = team_service.create(db, actor_for(captain), "Night Owls")
        tournament = make_tournament()
        registration_service.register(db, tournament.id, actor_for(captain), team_id=team.id)

        with pytest.raises(DuplicateRegistration):
            registration_service.register(db, tournament.id, actor_for(captain), team_id=team.id)


class TestProcessorSettlement:
    def test_pending_registration_reserves_funds(self, db, make_user, make_tournament):
        user = make_user(balance=150)
        tournament = make_tournament(entry_fee=100)

        participant = registration_service.register(
            db, tournament.id, actor_for(user), settle_now=False
        )

        assert participant.payment_status == "pending"
        db.refresh(tournament)
        assert tournament.current_participants == 0
        assert wallet_service.settled_balance(db, user.id) == Decimal("150.00")
        assert wallet_service.available_balance(db, user.id) == Decimal("50.00")

    def test_confirm_settles_both_sides(self, db, make_user, make_tournament):
        user = make_user(balance=150)
        tournament = make_tournament(entry_fee=100)
        participant = registration_service.register(
            db, tournament.id, actor_for(user), settle_now=False
        )
        txn = registration_service.entry_transaction(db, participant.id)

        participant = registration_service.confirm_payment(db, txn.id)

        db.refresh(txn)
        db.refresh(tournament)
        assert participant.payment_status == "paid"
        assert txn.status == "completed"
        assert tournament.current_participants == 1
        assert wallet_service.settled_balance(db, user.id) == Decimal("50.00")

    def test_confirm_twice_is_noop(self, db, make_user, make_tournament):
        user = make_user(balance=150)
        tournament = make_tournament(entry_fee=100)
        participant = registration_service.register(
            db, tournament.id, actor_for(user), settle_now=False
        )
        txn = registration_service.entry_transaction(db, participant.id)

        registration_service.confirm_payment(db, txn.id)
        registration_service.confirm_payment(db, txn.id)

        db.refresh(tournament)
        assert tournament.current_participants == 1

    def test_fail_releases_reservation(self, db, make_user, make_tournament):
        user = make_user(balance=150)
        tournament = make_tournament(entry_fee=100)
        participant = registration_service.register(
            db, tournament.id, actor_for(user), settle_now=False
        )
        txn = registration_service.entry_transaction(db, participant.id)

        participant = registration_service.fail_payment(db, txn.id)

        assert participant.payment_status == "failed"
        assert wallet_service.available_balance(db, user.id) == Decimal("150.00")

        # a failed attempt does not block a new one
        again = registration_service.register(db, tournament.id, actor_for(user))
        assert again.payment_status == "paid"

    def test_slot_lost_before_confirmation(self, db, make_user, make_tournament):
        first, second = make_user(balance=500), make_user(balance=500)
        tournament = make_tournament(max_participants=1)
        p1 = registration_service.register(db, tournament.id, actor_for(first), settle_now=False)
        p2 = registration_service.register(db, tournament.id, actor_for(second), settle_now=False)
        t1 = registration_service.entry_transaction(db, p1.id)
        t2 = registration_service.entry_transaction(db, p2.id)

        registration_service.confirm_payment(db, t1.id)
        with pytest.raises(CapacityExceeded):
            registration_service.confirm_payment(db, t2.id)

        db.refresh(t2)
        db.refresh(p2)
        db.refresh(tournament)
        assert t2.status == "failed"
        assert p2.payment_status == "failed"
        assert tournament.current_participants == 1
        assert _paid_count(db, tournament.id) == 1
        assert wallet_service.available_balance(db, second.id) == Decimal("500.00")
        assert db.query(WalletTransaction).filter(WalletTransaction.status == "pending").count() == 0

    def test_confirm_rejects_other_transaction_types(self, db, make_user):
        user = make_user()
        deposit = wallet_service.credit(db, user.id, 10, "deposit")

        with pytest.raises(ValidationError):
            registration_service.confirm_payment(db, deposit.id)


class TestCancellation:
    def test_cancel_refunds_paid_and_fails_pending(self, db, make_user, make_tournament, admin):
        paid, pending = make_user(balance=300), make_user(balance=300)
        tournament = make_tournament(entry_fee=100)
        registration_service.register(db, tournament.id, actor_for(paid))
        registration_service.register(db, tournament.id, actor_for(pending), settle_now=False)

        tournament_service.update_status(db, admin, tournament.id, "cancelled")

        db.refresh(tournament)
        assert tournament.status == "cancelled"
        assert tournament.current_participants == 0
        statuses = {p.payer_id: p.payment_status for p in tournament_service.get_participants(db, tournament.id)}
        assert statuses == {paid.id: "refunded", pending.id: "failed"}

        assert wallet_service.settled_balance(db, paid.id) == Decimal("300.00")
        assert wallet_service.available_balance(db, pending.id) == Decimal("300.00")
        [refund] = _transactions(db, paid.id, "refund")
        assert refund.amount == Decimal("100.00")

    def test_admin_removes_participant(self, db, make_user, make_tournament, admin):
        user = make_user(balance=300)
        tournament = make_tournament(entry_fee=100, max_participants=1)
        participant = registration_service.register(db, tournament.id, actor_for(user))

        removed = tournament_service.remove_participant(db, admin, tournament.id, participant.id)

        assert removed.payment_status == "refunded"
        db.refresh(tournament)
        assert tournament.current_participants == 0
        assert wallet_service.settled_balance(db, user.id) == Decimal("300.00")

        with pytest.raises(ValidationError):
            tournament_service.remove_participant(db, admin, tournament.id, participant.id)


def test_concurrent_registrations_for_last_slot(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'race.db'}")
    init_db(engine)
    Session = sessionmaker(bind=engine, autoflush=False)

    setup = Session()
    host = User(email="host@arena.gg", username="host", is_admin=True)
    racers = [User(email=f"r{i}@arena.gg", username=f"racer{i}") for i in range(2)]
    setup.add_all([host, *racers])
    setup.commit()
    for racer in racers:
        wallet_service.credit(setup, racer.id, 500, "deposit")
    tournament = tournament_service.create(
        setup,
        actor_for(host),
        title="Last Slot",
        game="Free Fire",
        entry_fee=100,
        prize_pool=0,
        max_participants=1,
        start_time=utcnow() + timedelta(days=1),
    )
    tournament_id = tournament.id
    racer_ids = [r.id for r in racers]
    setup.close()

    barrier = threading.Barrier(2)
    outcomes = {}

    def attempt(user_id):
        session = Session()
        try:
            barrier.wait()
            registration_service.register(session, tournament_id, Actor(user_id))
            outcomes[user_id] = "registered"
        except CapacityExceeded:
            outcomes[user_id] = "full"
        finally:
            session.close()

    threads = [threading.Thread(target=attempt, args=(uid,)) for uid in racer_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(outcomes.values()) == ["full", "registered"]

    check = Session()
    assert check.query(Tournament).filter(Tournament.id == tournament_id).one().current_participants == 1
    assert _paid_count(check, tournament_id) == 1
    assert check.query(WalletTransaction).filter(WalletTransaction.type == "entry_fee").count() == 1
    assert check.query(WalletTransaction).filter(WalletTransaction.status == "pending").count() == 0

    loser = next(uid for uid, outcome in outcomes.items() if outcome == "full")
    assert wallet_service.settled_balance(check, loser) == Decimal("500.00")
    check.close()
    engine.dispose()
