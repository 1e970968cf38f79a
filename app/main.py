import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from app.core.config import settings
from app.core.database import Database
from app.core.exceptions import register_exception_handlers
from app.core.logging import setup_logging
from app.services.payments import PaystackGateway
from app.routers import admin, admin_auth, auth, properties, verifications

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)
    database = Database(settings.database_url, echo=settings.SQL_ECHO)
    database.init()
    app.state.database = database
    app.state.payment_gateway = PaystackGateway(
        secret_key=settings.PAYSTACK_SECRET_KEY,
        base_url=settings.PAYSTACK_BASE_URL,
        timeout=settings.PAYMENT_TIMEOUT_SECONDS,
    )
    try:
        yield
    finally:
        app.state.payment_gateway.close()
        database.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    description="Property listing and third-party verification platform",
    version="1.0.0",
    lifespan=lifespan,
)

# Uploaded property images and avatars are served from here
for media_kind in ("properties", "users"):
    os.makedirs(os.path.join(settings.MEDIA_ROOT, media_kind), exist_ok=True)
app.mount("/media", StaticFiles(directory=settings.MEDIA_ROOT), name="media")


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers
app.include_router(auth.router, prefix="/api/v1")
app.include_router(properties.router, prefix="/api/v1")
app.include_router(verifications.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1/admin")
app.include_router(admin_auth.router, prefix="/api/v1/admin")

@app.get("/")
def root():
    return {
        "success": True,
        "message": "PropertyVerify API is running",
        "version": "1.0.0",
        "documentation": "/docs"
    }

@app.get("/health")
def health_check():
    db_connected = True
    try:
        with app.state.database.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Health check could not reach the database")
        db_connected = False
    return {
        "success": db_connected,
        "status": "healthy" if db_connected else "degraded",
        "service": settings.APP_NAME,
        "db_connected": db_connected,
        "timestamp": datetime.utcnow()
    }
