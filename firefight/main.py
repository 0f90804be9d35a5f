import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from firefight.config import settings
from firefight.database import init_db, SessionLocal
from firefight.errors import ArenaError
from firefight.events import relay
from firefight.routers import (
    home_router,
    user_router,
    tournament_router,
    team_router,
    match_router,
    wallet_router,
    payment_router,
    leaderboard_router,
    notification_router,
    admin_router,
)
from firefight.services.notification_service import make_listener

logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)

notification_listener = make_listener(SessionLocal)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    relay.subscribe(notification_listener)
    logger.info(f"FireFight Arena API started (entry fees settle via {settings.entry_fee_settlement})")
    yield
    relay.unsubscribe(notification_listener)


app = FastAPI(title="FireFight Arena API", lifespan=lifespan)


@app.exception_handler(ArenaError)
async def arena_error_handler(request: Request, exc: ArenaError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(home_router.router)
app.include_router(user_router.router)
app.include_router(tournament_router.router)
app.include_router(team_router.router)
app.include_router(match_router.router)
app.include_router(wallet_router.router)
app.include_router(payment_router.router)
app.include_router(leaderboard_router.router)
app.include_router(notification_router.router)
app.include_router(admin_router.router)
