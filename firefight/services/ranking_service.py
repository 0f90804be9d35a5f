from sqlalchemy import func
from sqlalchemy.orm import Session

from firefight.models.match import Match, MatchReport
from firefight.models.team import Team
from firefight.models.tournament import Tournament, TournamentParticipant
from firefight.models.user import User
from firefight.models.wallet import WalletTransaction
from firefight.services.wallet_service import to_money


def participant_names(db: Session, participants):
    """Display name per participant id: username for players, team name for teams."""
    user_ids = [p.user_id for p in participants if p.user_id]
    team_ids = [p.team_id for p in participants if p.team_id]
    users = {u.id: u.username for u in db.query(User).filter(User.id.in_(user_ids)).all()} if user_ids else {}
    teams = {t.id: t.name for t in db.query(Team).filter(Team.id.in_(team_ids)).all()} if team_ids else {}

    return {
        p.id: users.get(p.user_id) if p.user_id else teams.get(p.team_id)
        for p in participants
    }


def get_standings(db: Session, tournament_id: str):
    """Standings built from approved reports only."""
    reports = (
        db.query(MatchReport)
        .join(Match, Match.id == MatchReport.match_id)
        .filter(Match.tournament_id == tournament_id)
        .filter(MatchReport.verification_status == "approved")
        .all()
    )

    totals = {}
    for r in reports:
        row = totals.setdefault(r.participant_id, {
            "participant_id": r.participant_id,
            "matches": 0,
            "kills": 0,
            "points": 0,
            "best_placement": None,
        })
        row["matches"] += 1
        row["kills"] += r.kills
        row["points"] += r.points
        if row["best_placement"] is None or r.placement < row["best_placement"]:
            row["best_placement"] = r.placement

    participants = (
        db.query(TournamentParticipant)
        .filter(TournamentParticipant.id.in_(list(totals)))
        .all()
    ) if totals else []
    names = participant_names(db, participants)

    standings = sorted(totals.values(), key=lambda x: (x["points"], x["kills"]), reverse=True)
    for rank, row in enumerate(standings, start=1):
        row["rank"] = rank
        row["name"] = names.get(row["participant_id"])
    return standings


def get_top_earners(db: Session, limit: int = 20):
    rows = (
        db.query(
            User.id,
            User.username,
            func.sum(WalletTransaction.amount).label("winnings"),
            func.count(WalletTransaction.id).label("prizes"),
        )
        .join(WalletTransaction, WalletTransaction.user_id == User.id)
        .filter(WalletTransaction.type == "prize")
        .filter(WalletTransaction.status == "completed")
        .group_by(User.id, User.username)
        .order_by(func.sum(WalletTransaction.amount).desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "rank": i,
            "user_id": user_id,
            "username": username,
            "winnings": to_money(winnings),
            "prizes": prizes,
        }
        for i, (user_id, username, winnings, prizes) in enumerate(rows, start=1)
    ]


def get_recent_winners(db: Session, limit: int = 10):
    rows = (
        db.query(Match, Tournament)
        .join(Tournament, Tournament.id == Match.tournament_id)
        .filter(Match.status == "completed")
        .filter((Match.winner_user_id.isnot(None)) | (Match.winner_team_id.isnot(None)))
        .order_by(Match.end_time.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "match_id": m.id,
            "winner_user_id": m.winner_user_id,
            "winner_team_id": m.winner_team_id,
            "tournament_id": t.id,
            "tournament_title": t.title,
            "game": t.game,
            "prize_pool": to_money(t.prize_pool),
            "end_time": m.end_time,
        }
        for m, t in rows
    ]


def get_dashboard_stats(db: Session):
    total_prize_pool = (
        db.query(func.coalesce(func.sum(Tournament.prize_pool), 0))
        .filter(Tournament.status == "completed")
        .scalar()
    )
    return {
        "total_users": db.query(func.count(User.id)).scalar(),
        "total_tournaments": db.query(func.count(Tournament.id)).scalar(),
        "live_tournaments": db.query(func.count(Tournament.id)).filter(Tournament.status == "live").scalar(),
        "total_prize_pool": to_money(total_prize_pool),
    }
