from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Any

from pydantic import BaseModel, ConfigDict, Field


# ─── Requests ───

class UserCreate(BaseModel):
    email: str
    username: str


class UserUpdate(BaseModel):
    is_banned: Optional[bool] = None
    is_admin: Optional[bool] = None


class KycUpdate(BaseModel):
    status: str
    notes: Optional[str] = None


class PrizeShare(BaseModel):
    position: int
    percentage: Optional[Decimal] = None
    amount: Optional[Decimal] = None


class TournamentCreate(BaseModel):
    title: str
    game: str
    game_mode: Optional[str] = None
    map_name: Optional[str] = None
    description: Optional[str] = None
    rules: Optional[str] = None
    entry_fee: Decimal = Decimal("0")
    prize_pool: Decimal = Decimal("0")
    max_participants: int
    start_time: datetime
    registration_deadline: Optional[datetime] = None
    end_time: Optional[datetime] = None
    prize_distribution: Optional[List[PrizeShare]] = None


class TournamentStatusUpdate(BaseModel):
    status: str


class JoinRequest(BaseModel):
    team_id: Optional[str] = None


class TeamCreate(BaseModel):
    name: str
    tag: Optional[str] = None
    max_players: int = 4


class TeamJoinRequest(BaseModel):
    join_code: str = Field(min_length=6, max_length=12)


class MatchCreate(BaseModel):
    start_time: Optional[datetime] = None


class MatchUpdate(BaseModel):
    status: Optional[str] = None
    winner_user_id: Optional[str] = None
    winner_team_id: Optional[str] = None
    results: Optional[Any] = None


class ReportCreate(BaseModel):
    kills: int = Field(ge=0)
    placement: int = Field(ge=1)
    points: int = Field(ge=0)
    evidence_url: Optional[str] = None
    participant_id: Optional[str] = None


class ReportDecision(BaseModel):
    decision: str
    notes: Optional[str] = None


class WalletAdjust(BaseModel):
    user_id: str
    amount: Decimal
    reason: str


class RefundRequest(BaseModel):
    reason: Optional[str] = None


class WithdrawRequest(BaseModel):
    amount: Decimal


class DepositCallback(BaseModel):
    user_id: str
    amount: Decimal
    external_ref: str


# ─── Responses ───

class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class UserOut(ORMModel):
    id: str
    email: str
    username: str
    kyc_status: str
    is_admin: bool
    is_banned: bool
    created_at: datetime


class BalanceOut(BaseModel):
    user_id: str
    balance: Decimal
    reserved: Decimal
    available: Decimal


class TournamentOut(ORMModel):
    id: str
    title: str
    description: Optional[str] = None
    game: str
    game_mode: Optional[str] = None
    map_name: Optional[str] = None
    rules: Optional[str] = None
    entry_fee: Decimal
    prize_pool: Decimal
    prize_distribution: Optional[List[dict]] = None
    max_participants: int
    current_participants: int
    start_time: datetime
    registration_deadline: datetime
    end_time: Optional[datetime] = None
    status: str
    host_id: str


class ParticipantOut(ORMModel):
    id: str
    tournament_id: str
    user_id: Optional[str] = None
    team_id: Optional[str] = None
    payer_id: str
    payment_status: str
    registration_time: datetime


class TransactionOut(ORMModel):
    id: str
    user_id: str
    type: str
    amount: Decimal
    status: str
    description: Optional[str] = None
    tournament_id: Optional[str] = None
    participant_id: Optional[str] = None
    match_report_id: Optional[str] = None
    refund_of_id: Optional[str] = None
    external_ref: Optional[str] = None
    admin_id: Optional[str] = None
    admin_reason: Optional[str] = None
    created_at: datetime
    settled_at: Optional[datetime] = None


class RegistrationOut(BaseModel):
    participant: ParticipantOut
    transaction: Optional[TransactionOut] = None


class TeamMemberOut(ORMModel):
    id: str
    team_id: str
    user_id: str
    role: str
    joined_at: datetime


class TeamOut(ORMModel):
    id: str
    name: str
    tag: Optional[str] = None
    captain_id: str
    max_players: int
    join_code: str
    created_at: datetime


class TeamDetailOut(TeamOut):
    members: List[TeamMemberOut] = []


class MatchOut(ORMModel):
    id: str
    tournament_id: str
    match_number: int
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: str
    results: Optional[Any] = None
    winner_user_id: Optional[str] = None
    winner_team_id: Optional[str] = None


class ReportOut(ORMModel):
    id: str
    match_id: str
    participant_id: str
    reporter_id: str
    kills: int
    placement: int
    points: int
    evidence_url: Optional[str] = None
    verification_status: str
    admin_notes: Optional[str] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    submitted_at: datetime


class StandingOut(BaseModel):
    rank: int
    participant_id: str
    name: Optional[str] = None
    matches: int
    kills: int
    points: int
    best_placement: Optional[int] = None


class NotificationOut(ORMModel):
    id: str
    title: str
    message: str
    type: str
    is_read: bool
    data: Optional[Any] = None
    created_at: datetime
