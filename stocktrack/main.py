import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stocktrack.api import admin, auth, insets, inventory, metadata, outsets
from stocktrack.config import settings
from stocktrack.database import SessionLocal, init_db
from stocktrack.errors import setup_exception_handlers
from stocktrack.services.auth_service import ensure_default_admin
from stocktrack.services.cleanup_service import CleanupScheduler

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    db = SessionLocal()
    try:
        ensure_default_admin(db)
    finally:
        db.close()

    scheduler = None
    if settings.CLEANUP_ENABLED:
        scheduler = CleanupScheduler(SessionLocal)
        scheduler.start()
    app.state.cleanup_scheduler = scheduler
    yield
    if scheduler is not None:
        scheduler.stop()


app = FastAPI(
    title=settings.APP_NAME,
    description="SKU and bin inventory ledger with inbound, outbound, Excel import and cleanup",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app)

app.include_router(auth.router, prefix="/api")
app.include_router(admin.router, prefix="/api")
app.include_router(inventory.router, prefix="/api")
app.include_router(insets.router, prefix="/api")
app.include_router(outsets.router, prefix="/api")
app.include_router(metadata.router, prefix="/api")


@app.get("/health")
def health():
    return {"status": "ok", "environment": settings.ENVIRONMENT}
