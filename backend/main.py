import os

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from api import coinstreak_error_handler, request_validation_handler, router
from config import configure_logging
from database import SessionLocal, init_db
from engine.errors import CoinStreakError
from services import seed_badges

configure_logging()
log = structlog.get_logger(__name__)

app = FastAPI(title="CoinStreak API", version="1.0.0")

# CORS configuration
origins = os.getenv("COINSTREAK_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")
app.add_exception_handler(CoinStreakError, coinstreak_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)


@app.on_event("startup")
def on_startup():
    """Create tables and sync the badge catalog."""
    init_db()

    db = SessionLocal()
    try:
        created = seed_badges(db)
        log.info("startup_complete", badges_created=created)
    finally:
        db.close()


@app.get("/health")
def health_check():
    return {"status": "healthy"}
