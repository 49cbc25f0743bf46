import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bookshare.config import settings
from bookshare.database import create_db_and_tables
from bookshare.errors import register_error_handlers
from bookshare.routes import (
    cancellations,
    health,
    reports,
)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # migrations own the schema everywhere except local dev
    if settings.ENV == "local":
        create_db_and_tables()
        logger.info("Local tables created")
    yield


app = FastAPI(title="Bookshare Trust & Moderation API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(cancellations.router, prefix="/cancellations", tags=["Cancellations"])
app.include_router(reports.router, prefix="/reports", tags=["Reports"])
app.include_router(health.router, prefix="/health", tags=["Health"])


@app.get("/")
def root():
    return {
        "cancellation_endpoints": [
            "/cancellations/initiate",
            "/cancellations/{cancellation_id}/respond",
            "/cancellations/transaction/{transaction_id}",
            "/cancellations/{cancellation_id}/history",
            "/cancellations/expire-old-requests",
        ],
        "report_endpoints": [
            "/reports/submit",
            "/reports/appeal/{report_id}",
            "/reports/appeal/{report_id}/resolve",
            "/reports/my-reports",
            "/reports/against-me",
            "/reports/trust-score",
        ],
        "health": ["/health/check"],
    }
