# donorlink/main.py
from contextlib import asynccontextmanager
import logging

from fastapi.middleware.cors import CORSMiddleware
from fastapi import FastAPI

from donorlink.core.config import get_settings
from donorlink.core.realtime import message_broker
from donorlink.database import create_db_and_tables

# Import models so SQLModel metadata is populated before create_all()
from donorlink.models import user as _user_models  # noqa: F401
from donorlink.models import conversation as _conversation_models  # noqa: F401


# Routers
from donorlink.routers.auth import router as auth_router
from donorlink.routers.users import router as users_router
from donorlink.routers.profile import router as profile_router
from donorlink.routers.dashboard import router as dashboard_router
from donorlink.routers.search import router as search_router
from donorlink.routers.conversations import router as conversations_router
from donorlink.routers.messages import router as messages_router

settings = get_settings()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("uvicorn")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
      - Verify DB connectivity and create tables.

    Shutdown:
      - Cancel any live chat subscriptions still open.
    """
    logger.info("🔄 Startup: Connecting to database...")
    try:
        create_db_and_tables()
        logger.info("✅ Startup: DB connection OK, tables verified.")
    except Exception as e:
        logger.error(f"❌ Startup: DB connection FAILED: {e}")
        raise
    yield
    message_broker.clear()


app = FastAPI(
    title=settings.PROJECT_NAME or "DonorLink API",
    version="0.1.0",
    lifespan=lifespan,
)


# --- CORS configuration ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Redirect"],
)

# Versioned API prefix, e.g. /api/v1
app.include_router(auth_router, prefix=settings.API_V1_STR)
app.include_router(users_router, prefix=settings.API_V1_STR)
app.include_router(profile_router, prefix=settings.API_V1_STR)
app.include_router(dashboard_router, prefix=settings.API_V1_STR)
app.include_router(search_router, prefix=settings.API_V1_STR)
app.include_router(conversations_router, prefix=settings.API_V1_STR)
app.include_router(messages_router, prefix=settings.API_V1_STR)


@app.get("/")
def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "donorlink-backend"}
