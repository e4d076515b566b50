import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from database import AsyncSessionLocal, init_db
from api.applications import router as applications_router
from api.lenders import products_router as lender_products_router
from api.lenders import router as lenders_router
from api.matching import router as matching_router
from api.tasks import router as tasks_router
from services.notifier import run_outbox_worker

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    worker = None
    if settings.outbox_worker_enabled:
        worker = asyncio.create_task(run_outbox_worker(AsyncSessionLocal))
    yield
    if worker is not None:
        worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await worker
        logger.info("Outbox worker stopped")


app = FastAPI(
    title=settings.app_name,
    description="Loan application intake, lender matching and CRM API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(applications_router)
app.include_router(lenders_router)
app.include_router(lender_products_router)
app.include_router(matching_router)
app.include_router(tasks_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
