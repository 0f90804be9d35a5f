from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Text, JSON, UniqueConstraint
from firefight.database import Base, utcnow
import uuid

MATCH_STATUSES = ("scheduled", "live", "completed")
MATCH_TRANSITIONS = {
    "scheduled": ("live", "completed"),
    "live": ("completed",),
    "completed": (),
}
VERIFICATION_STATUSES = ("pending", "approved", "rejected")


class Match(Base):
    __tablename__ = "matches"
    __table_args__ = (
        UniqueConstraint("tournament_id", "match_number", name="uq_match_number"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    tournament_id = Column(String, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False)

    match_number = Column(Integer, nullable=False)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    status = Column(String, nullable=False, default="scheduled")

    results = Column(JSON, nullable=True)
    winner_user_id = Column(String, ForeignKey("users.id"), nullable=True)
    winner_team_id = Column(String, ForeignKey("teams.id"), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)


class MatchReport(Base):
    __tablename__ = "match_reports"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    match_id = Column(String, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    participant_id = Column(String, ForeignKey("tournament_participants.id", ondelete="CASCADE"), nullable=False)
    reporter_id = Column(String, ForeignKey("users.id"), nullable=False)

    kills = Column(Integer, nullable=False, default=0)
    placement = Column(Integer, nullable=False)
    points = Column(Integer, nullable=False, default=0)
    evidence_url = Column(String, nullable=True)

    verification_status = Column(String, nullable=False, default="pending")
    admin_notes = Column(Text, nullable=True)
    verified_by = Column(String, ForeignKey("users.id"), nullable=True)
    verified_at = Column(DateTime, nullable=True)

    submitted_at = Column(DateTime, nullable=False, default=utcnow)
