import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cds.config import HOST, PORT, SEED_SYSTEM_ALERTS
from cds.database import close_db, init_db
from cds.errors import CDSError
from cds.routers import alerts, interactions
from cds.services.alert_catalog import seed_system_alerts

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting CDS core...")
    await init_db()
    logger.info("Database initialized")
    if SEED_SYSTEM_ALERTS:
        await seed_system_alerts()
    yield
    await close_db()
    logger.info("CDS core shut down")


app = FastAPI(
    title="CDS Core",
    description="Clinical decision support: drug interaction checks and preference-aware clinical alerts",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(CDSError)
async def cds_error_handler(request: Request, exc: CDSError):
    body = {"type": exc.type, "code": exc.code, "message": exc.message}
    if exc.detail is not None:
        body["detail"] = exc.detail
    return JSONResponse(body, status_code=exc.http_status)


app.include_router(alerts.router)
app.include_router(interactions.router)


def run() -> None:
    uvicorn.run("cds.main:app", host=HOST, port=PORT)
