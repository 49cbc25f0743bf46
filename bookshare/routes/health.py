import logging
import time
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from bookshare.config import settings
from bookshare.database import get_session

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/check")
def health_check(session: Session = Depends(get_session)):
    started = time.perf_counter()
    try:
        session.exec(select(1)).one()
        database = "ok"
    except Exception:
        logger.exception("Database ping failed")
        database = "failed"
    latency_ms = round((time.perf_counter() - started) * 1000, 2)

    return {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "database_latency_ms": latency_ms,
        "environment": settings.ENV,
        "timestamp": datetime.utcnow().isoformat(),
    }
