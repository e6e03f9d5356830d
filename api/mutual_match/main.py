import logging
import time

from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from .database import Base, SessionLocal, engine
from .routes import include_modular_routers
from .services.matching import MatchingService
from .store import DocumentStore

logger = logging.getLogger(__name__)

app = FastAPI(title="Mutual Match API")
include_modular_routers(app)

matching_service = MatchingService(DocumentStore(SessionLocal))


def wait_for_db(max_attempts: int = 20, delay_seconds: float = 1.5) -> None:
    last_err: Exception | None = None
    for _ in range(max_attempts):
        try:
            with SessionLocal() as db:
                db.execute(text("SELECT 1"))
                db.commit()
            return
        except OperationalError as exc:
            last_err = exc
            logger.warning("[startup] database not ready: %s", exc)
            time.sleep(delay_seconds)
    if last_err:
        raise last_err


def create_tables() -> None:
    Base.metadata.create_all(bind=engine)


@app.on_event("startup")
def on_startup() -> None:
    wait_for_db()
    create_tables()


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
