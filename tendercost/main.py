# tendercost/main.py
from contextlib import asynccontextmanager
import logging

from fastapi.middleware.cors import CORSMiddleware
from fastapi import FastAPI
from sqlmodel import Session

from tendercost.core.config import get_settings
from tendercost.database import create_db_and_tables, get_engine

# Import models so SQLModel metadata is populated before create_all()
from tendercost.models import user as _user_models  # noqa: F401

# Routers
from tendercost.routers.users import router as users_router, service as user_service

settings = get_settings()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("uvicorn")


def seed_initial_admin() -> None:
    """
    Create the protected administrator if INITIAL_ADMIN_* is configured.
    """
    if not (settings.INITIAL_ADMIN_EMAIL and settings.INITIAL_ADMIN_PASSWORD):
        logger.info("ℹ️ Startup: no initial admin configured, skipping seed.")
        return

    from tendercost.core.supabase_client import supabase_admin

    with Session(get_engine()) as session:
        user = user_service.seed_initial_admin(
            session,
            supabase_admin(),
            email=settings.INITIAL_ADMIN_EMAIL,
            password=settings.INITIAL_ADMIN_PASSWORD,
            full_name=settings.INITIAL_ADMIN_NAME,
        )
        logger.info(f"✅ Startup: initial admin ready ({user.id}).")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
      - Verify DB connectivity and create tables.
      - Seed the protected administrator account.

    Shutdown:
      - No special cleanup needed for sync engine.
    """
    logger.info("🔄 Startup: Connecting to Supabase Postgres...")
    try:
        create_db_and_tables()
        logger.info("✅ Startup: DB connection OK, tables verified.")
    except Exception as e:
        logger.error(f"❌ Startup: DB connection FAILED: {e}")
        raise

    try:
        seed_initial_admin()
    except Exception as e:
        logger.error(f"❌ Startup: initial admin seed FAILED: {e}")
    yield


app = FastAPI(
    title=settings.PROJECT_NAME or "Tender Costing API",
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Versioned API prefix, e.g. /api/v1
app.include_router(users_router, prefix=settings.API_V1_STR)


@app.get("/")
def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "tendercost-backend"}
