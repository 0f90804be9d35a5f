from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Numeric, Text, JSON
from firefight.database import Base, utcnow
import uuid

TOURNAMENT_STATUSES = ("upcoming", "live", "completed", "cancelled")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")

# allowed status moves
STATUS_TRANSITIONS = {
    "upcoming": ("live", "cancelled"),
    "live": ("completed", "cancelled"),
    "completed": (),
    "cancelled": (),
}


class Tournament(Base):
    __tablename__ = "tournaments"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    game = Column(String, nullable=False)
    game_mode = Column(String, nullable=True)  # Solo, Squad, Team
    map_name = Column(String, nullable=True)
    rules = Column(Text, nullable=True)

    entry_fee = Column(Numeric(10, 2), nullable=False, default=0)
    prize_pool = Column(Numeric(10, 2), nullable=False, default=0)
    # [{"position": 1, "percentage": 50}, {"position": 2, "amount": 300}]
    prize_distribution = Column(JSON, nullable=True)

    max_participants = Column(Integer, nullable=False)
    # number of participants whose payment_status is "paid"
    current_participants = Column(Integer, nullable=False, default=0)

    start_time = Column(DateTime, nullable=False)
    registration_deadline = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)

    status = Column(String, nullable=False, default="upcoming")
    host_id = Column(String, ForeignKey("users.id"), nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class TournamentParticipant(Base):
    __tablename__ = "tournament_participants"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    tournament_id = Column(String, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False)
    # exactly one of user_id / team_id is set
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    team_id = Column(String, ForeignKey("teams.id"), nullable=True)
    # user whose wallet paid the entry fee (the team captain for teams)
    payer_id = Column(String, ForeignKey("users.id"), nullable=False)
    payment_status = Column(String, nullable=False, default="pending")
    registration_time = Column(DateTime, nullable=False, default=utcnow)
