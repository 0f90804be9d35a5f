from typing import List

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas
from reportlab.lib.units import cm
import io

from firefight.auth import Actor, get_current_actor, get_admin_actor
from firefight.database import get_db
from firefight.schemas import (
    TournamentCreate,
    TournamentOut,
    ParticipantOut,
    JoinRequest,
    RegistrationOut,
    TransactionOut,
    MatchOut,
    StandingOut,
)
from firefight.services import tournament_service, registration_service, match_service
from firefight.services.ranking_service import get_standings

router = APIRouter(prefix="/api/tournaments")


@router.get("", response_model=List[TournamentOut])
def list_tournaments(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
                     db: Session = Depends(get_db)):
    return tournament_service.get_all(db, limit, (page - 1) * limit)


@router.get("/upcoming", response_model=List[TournamentOut])
def upcoming_tournaments(db: Session = Depends(get_db)):
    return tournament_service.get_upcoming(db)


@router.get("/live", response_model=List[TournamentOut])
def live_tournaments(db: Session = Depends(get_db)):
    return tournament_service.get_live(db)


@router.get("/featured", response_model=List[TournamentOut])
def featured_tournaments(db: Session = Depends(get_db)):
    return tournament_service.get_featured(db)


@router.post("", response_model=TournamentOut)
def create_tournament(payload: TournamentCreate, admin: Actor = Depends(get_admin_actor),
                      db: Session = Depends(get_db)):
    data = payload.model_dump()
    if payload.prize_distribution is not None:
        data["prize_distribution"] = [p.model_dump() for p in payload.prize_distribution]
    return tournament_service.create(db, admin, **data)


@router.get("/{tournament_id}", response_model=TournamentOut)
def get_tournament(tournament_id: str, db: Session = Depends(get_db)):
    return tournament_service.get_or_404(db, tournament_id)


@router.post("/{tournament_id}/join", response_model=RegistrationOut)
def join_tournament(tournament_id: str, payload: JoinRequest = None,
                    actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    team_id = payload.team_id if payload else None
    participant = registration_service.register(db, tournament_id, actor, team_id=team_id)
    txn = registration_service.entry_transaction(db, participant.id)
    return RegistrationOut(
        participant=ParticipantOut.model_validate(participant),
        transaction=TransactionOut.model_validate(txn) if txn else None,
    )


@router.get("/{tournament_id}/participants", response_model=List[ParticipantOut])
def list_participants(tournament_id: str, db: Session = Depends(get_db)):
    tournament_service.get_or_404(db, tournament_id)
    return tournament_service.get_participants(db, tournament_id)


@router.get("/{tournament_id}/matches", response_model=List[MatchOut])
def list_matches(tournament_id: str, db: Session = Depends(get_db)):
    tournament_service.get_or_404(db, tournament_id)
    return match_service.get_by_tournament(db, tournament_id)


@router.get("/{tournament_id}/standings", response_model=List[StandingOut])
def standings(tournament_id: str, db: Session = Depends(get_db)):
    tournament_service.get_or_404(db, tournament_id)
    return get_standings(db, tournament_id)


@router.get("/{tournament_id}/standings.pdf")
def standings_pdf(tournament_id: str, db: Session = Depends(get_db)):
    tournament = tournament_service.get_or_404(db, tournament_id)
    rows = get_standings(db, tournament_id)

    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4

    y = height - 2 * cm

    # Title
    pdf.setFont("Helvetica-Bold", 16)
    pdf.drawCentredString(width / 2, y, tournament.title)
    y -= 20
    pdf.setFont("Helvetica", 12)
    pdf.drawCentredString(
        width / 2,
        y,
        f"{tournament.game} - standings ({tournament.status})"
    )

    y -= 30

    columns = [
        (2 * cm, "#"),
        (3 * cm, "Participant"),
        (11 * cm, "Matches"),
        (13.5 * cm, "Kills"),
        (16 * cm, "Points"),
    ]

    def header(y):
        pdf.setFont("Helvetica-Bold", 10)
        for x, label in columns:
            pdf.drawString(x, y, label)
        pdf.setFont("Helvetica", 10)
        return y - 15

    y = header(y)

    for row in rows:
        if y < 3 * cm:
            pdf.showPage()
            y = header(height - 2 * cm)

        pdf.drawString(columns[0][0], y, str(row["rank"]))
        pdf.drawString(columns[1][0], y, (row["name"] or row["participant_id"])[:40])
        pdf.drawString(columns[2][0], y, str(row["matches"]))
        pdf.drawString(columns[3][0], y, str(row["kills"]))
        pdf.drawString(columns[4][0], y, str(row["points"]))
        y -= 15

    if not rows:
        pdf.drawCentredString(width / 2, y, "No verified results yet")

    pdf.save()
    buffer.seek(0)

    return StreamingResponse(
        buffer,
        media_type="application/pdf",
        headers={
            "Content-Disposition":
                f"attachment; filename=standings_{tournament.id}.pdf"
        }
    )
