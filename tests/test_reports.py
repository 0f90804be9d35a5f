"""
tests/test_reports.py - Matches, result reports, verification and prize payout.
"""

from decimal import Decimal

import pytest

from firefight.auth import actor_for
from firefight.errors import AlreadyVerified, Unauthorized, ValidationError
from firefight.models.wallet import WalletTransaction
from firefight.services import match_service, registration_service, team_service, tournament_service, wallet_service
from firefight.services.ranking_service import get_standings


PRIZES = [
    {"position": 1, "percentage": 50},
    {"position": 2, "amount": 100},
]


@pytest.fixture
def arena(db, make_user, make_tournament, admin):
    """A tournament with one paid player and a scheduled match."""
    player = make_user("viper", balance=500)
    tournament = make_tournament(prize_pool=1000, prize_distribution=PRIZES)
    participant = registration_service.register(db, tournament.id, actor_for(player))
    match = match_service.create(db, admin, tournament.id)
    return player, tournament, participant, match


def _prizes(db):
    return db.query(WalletTransaction).filter(WalletTransaction.type == "prize").all()


class TestMatches:
    def test_match_numbers_increment(self, db, make_tournament, admin):
        tournament = make_tournament()
        first = match_service.create(db, admin, tournament.id)
        second = match_service.create(db, admin, tournament.id)

        assert (first.match_number, second.match_number) == (1, 2)
        assert first.status == "scheduled"

    def test_status_transitions(self, db, arena, admin, events):
        player, _, _, match = arena

        live = match_service.update_match(db, admin, match.id, status="live")
        assert live.start_time is not None

        done = match_service.update_match(db, admin, match.id, status="completed",
                                          winner_user_id=player.id)
        assert done.end_time is not None
        assert done.winner_user_id == player.id
        assert events[-1][0] == "match_result"

        with pytest.raises(ValidationError):
            match_service.update_match(db, admin, match.id, status="live")

    def test_winner_must_be_paid_participant(self, db, arena, make_user, admin):
        _, _, _, match = arena
        outsider = make_user()

        with pytest.raises(ValidationError):
            match_service.update_match(db, admin, match.id, winner_user_id=outsider.id)

    def test_only_admins_create_matches(self, db, arena):
        player, tournament, _, _ = arena
        with pytest.raises(Unauthorized):
            match_service.create(db, actor_for(player), tournament.id)


class TestSubmitReport:
    def test_report_is_pending(self, db, arena):
        player, _, participant, match = arena

        report = match_service.submit_report(db, match.id, actor_for(player), kills=7, placement=1, points=20)

        assert report.verification_status == "pending"
        assert report.participant_id == participant.id
        assert report.reporter_id == player.id

    def test_outsider_cannot_report(self, db, arena, make_user):
        _, _, _, match = arena
        outsider = make_user()

        with pytest.raises(Unauthorized):
            match_service.submit_report(db, match.id, actor_for(outsider), kills=1, placement=3, points=2)

    def test_negative_kills_rejected(self, db, arena):
        player, _, _, match = arena
        with pytest.raises(ValidationError):
            match_service.submit_report(db, match.id, actor_for(player), kills=-1, placement=1, points=0)

    def test_one_open_report_per_match(self, db, arena, admin):
        player, _, _, match = arena
        first = match_service.submit_report(db, match.id, actor_for(player), kills=7, placement=1, points=20)

        with pytest.raises(ValidationError):
            match_service.submit_report(db, match.id, actor_for(player), kills=9, placement=1, points=25)

        match_service.verify_report(db, first.id, admin, "approve")
        with pytest.raises(ValidationError):
            match_service.submit_report(db, match.id, actor_for(player), kills=9, placement=1, points=25)

    def test_rejected_report_can_be_resubmitted(self, db, arena, admin):
        player, _, _, match = arena
        first = match_service.submit_report(db, match.id, actor_for(player), kills=7, placement=1, points=20)
        match_service.verify_report(db, first.id, admin, "reject", notes="blurry screenshot")

        again = match_service.submit_report(db, match.id, actor_for(player), kills=7, placement=1, points=20)
        assert again.verification_status == "pending"

    def test_pending_reports_leave_standings_untouched(self, db, arena):
        player, tournament, _, match = arena
        match_service.submit_report(db, match.id, actor_for(player), kills=7, placement=1, points=20)

        assert get_standings(db, tournament.id) == []


class TestVerifyReport:
    def test_approval_pays_percentage_prize(self, db, arena, admin, events):
        player, tournament, _, match = arena
        report = match_service.submit_report(db, match.id, actor_for(player), kills=7, placement=1, points=20)

        verified = match_service.verify_report(db, report.id, admin, "approve", notes="clip checks out")

        assert verified.verification_status == "approved"
        assert verified.verified_by == admin.user_id
        [prize] = _prizes(db)
        assert prize.user_id == player.id
        assert prize.amount == Decimal("500.00")
        assert prize.match_report_id == report.id
        assert prize.tournament_id == tournament.id

        event_type, payload = events[-1]
        assert event_type == "match_result"
        assert payload["user_id"] == player.id
        assert payload["prize"] == "500.00"

    def test_fixed_amount_prize(self, db, arena, admin):
        player, _, _, match = arena
        report = match_service.submit_report(db, match.id, actor_for(player), kills=3, placement=2, points=12)

        match_service.verify_report(db, report.id, admin, "approve")

        [prize] = _prizes(db)
        assert prize.amount == Decimal("100.00")

    def test_second_approval_is_rejected_and_pays_once(self, db, arena, admin):
        player, _, _, match = arena
        report = match_service.submit_report(db, match.id, actor_for(player), kills=7, placement=1, points=20)
        match_service.verify_report(db, report.id, admin, "approve")

        with pytest.raises(AlreadyVerified):
            match_service.verify_report(db, report.id, admin, "approve")
        with pytest.raises(AlreadyVerified):
            match_service.verify_report(db, report.id, admin, "reject")

        assert len(_prizes(db)) == 1

    def test_rejection_pays_nothing(self, db, arena, admin):
        player, tournament, _, match = arena
        report = match_service.submit_report(db, match.id, actor_for(player), kills=7, placement=1, points=20)

        rejected = match_service.verify_report(db, report.id, admin, "reject", notes="edited screenshot")

        assert rejected.verification_status == "rejected"
        assert rejected.admin_notes == "edited screenshot"
        assert _prizes(db) == []
        assert get_standings(db, tournament.id) == []

    def test_placement_paid_once_per_participant(self, db, arena, admin):
        player, tournament, _, match = arena
        first = match_service.submit_report(db, match.id, actor_for(player), kills=7, placement=1, points=20)
        match_service.verify_report(db, first.id, admin, "approve")

        rematch = match_service.create(db, admin, tournament.id)
        second = match_service.submit_report(db, rematch.id, actor_for(player), kills=5, placement=1, points=18)
        approved = match_service.verify_report(db, second.id, admin, "approve")

        assert approved.verification_status == "approved"
        [prize] = _prizes(db)
        assert prize.match_report_id == first.id
        assert wallet_service.settled_balance(db, player.id) == Decimal("900.00")

    def test_approval_after_cancellation_refused(self, db, arena, admin):
        player, tournament, _, match = arena
        report = match_service.submit_report(db, match.id, actor_for(player), kills=7, placement=1, points=20)
        tournament_service.update_status(db, admin, tournament.id, "cancelled")

        with pytest.raises(ValidationError):
            match_service.verify_report(db, report.id, admin, "approve")

        db.refresh(report)
        assert report.verification_status == "pending"
        assert _prizes(db) == []
        # the entry fee came back, nothing more
        assert wallet_service.settled_balance(db, player.id) == Decimal("500.00")

        rejected = match_service.verify_report(db, report.id, admin, "reject", notes="tournament cancelled")
        assert rejected.verification_status == "rejected"

    def test_removed_participant_is_not_paid(self, db, arena, admin):
        player, tournament, participant, match = arena
        report = match_service.submit_report(db, match.id, actor_for(player), kills=7, placement=1, points=20)
        tournament_service.remove_participant(db, admin, tournament.id, participant.id)

        with pytest.raises(ValidationError):
            match_service.verify_report(db, report.id, admin, "approve")
        assert _prizes(db) == []

    def test_placement_without_prize(self, db, arena, admin):
        player, _, _, match = arena
        report = match_service.submit_report(db, match.id, actor_for(player), kills=1, placement=9, points=3)

        match_service.verify_report(db, report.id, admin, "approve")

        assert _prizes(db) == []

    def test_non_admin_cannot_verify(self, db, arena):
        player, _, _, match = arena
        report = match_service.submit_report(db, match.id, actor_for(player), kills=7, placement=1, points=20)

        with pytest.raises(Unauthorized):
            match_service.verify_report(db, report.id, actor_for(player), "approve")

        db.refresh(report)
        assert report.verification_status == "pending"
        assert _prizes(db) == []

    def test_unknown_decision(self, db, arena, admin):
        player, _, _, match = arena
        report = match_service.submit_report(db, match.id, actor_for(player), kills=7, placement=1, points=20)

        with pytest.raises(ValidationError):
            match_service.verify_report(db, report.id, admin, "maybe")

    def test_team_prize_goes_to_captain(self, db, make_user, make_tournament, admin):
        captain, member = make_user(balance=500), make_user()
        team = team_service.create(db, actor_for(captain), "Night Owls", "NO")
        team_service.join(db, actor_for(member), team.join_code)
        tournament = make_tournament(prize_distribution=PRIZES)
        registration_service.register(db, tournament.id, actor_for(captain), team_id=team.id)
        match = match_service.create(db, admin, tournament.id)

        # any team member can report for the team
        report = match_service.submit_report(db, match.id, actor_for(member), kills=11, placement=1, points=30)
        match_service.verify_report(db, report.id, admin, "approve")

        [prize] = _prizes(db)
        assert prize.user_id == captain.id


class TestStandings:
    def test_ordered_by_points_then_kills(self, db, make_user, make_tournament, admin):
        tournament = make_tournament()
        players = [make_user(name, balance=200) for name in ("ace", "blaze", "cobra")]
        for p in players:
            registration_service.register(db, tournament.id, actor_for(p))
        match = match_service.create(db, admin, tournament.id)

        results = {"ace": (5, 2, 18), "blaze": (9, 1, 18), "cobra": (12, 3, 10)}
        for p in players:
            kills, placement, points = results[p.username]
            report = match_service.submit_report(db, match.id, actor_for(p), kills=kills,
                                                 placement=placement, points=points)
            match_service.verify_report(db, report.id, admin, "approve")

        # one pending report that must not count
        second = match_service.create(db, admin, tournament.id)
        match_service.submit_report(db, second.id, actor_for(players[2]), kills=40, placement=1, points=99)

        standings = get_standings(db, tournament.id)
        assert [(row["rank"], row["name"]) for row in standings] == [(1, "blaze"), (2, "ace"), (3, "cobra")]
        assert standings[0]["kills"] == 9
        assert standings[2]["points"] == 10

    def test_cancelled_tournament_blocks_reports(self, db, arena, admin):
        player, tournament, _, match = arena
        tournament_service.update_status(db, admin, tournament.id, "cancelled")

        with pytest.raises(ValidationError):
            match_service.submit_report(db, match.id, actor_for(player), kills=1, placement=1, points=1)
