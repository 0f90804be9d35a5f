from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, UniqueConstraint, Index, text
from sqlalchemy.orm import relationship
from firefight.database import Base, utcnow
import uuid

MEMBER_ROLES = ("captain", "player")


class Team(Base):
    __tablename__ = "teams"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    tag = Column(String, nullable=True)
    captain_id = Column(String, ForeignKey("users.id"), nullable=False)
    max_players = Column(Integer, nullable=False, default=4)
    join_code = Column(String(12), unique=True, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    members = relationship(
        "TeamMember",
        back_populates="team",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class TeamMember(Base):
    __tablename__ = "team_members"
    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_member"),
        # one captain per team
        Index(
            "uq_team_captain",
            "team_id",
            unique=True,
            sqlite_where=text("role = 'captain'"),
            postgresql_where=text("role = 'captain'"),
        ),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    team_id = Column(String, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String, nullable=False, default="player")
    joined_at = Column(DateTime, nullable=False, default=utcnow)

    team = relationship("Team", back_populates="members")
