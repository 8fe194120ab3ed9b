"""SurveyMail — FastAPI Application Entry Point.

Survey distribution service: email campaigns, open/response tracking and
campaign analytics.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from surveymail.database import init_db, test_connection, db_url
from surveymail.scheduler.jobs import start_scheduler, stop_scheduler
from surveymail.api.audience_routes import router as audience_router
from surveymail.api.campaign_routes import router as campaign_router
from surveymail.api.survey_routes import router as survey_router
from surveymail.api.tracking_routes import router as tracking_router
from surveymail.core.logging import get_logger

logger = get_logger("main")

VERSION = "1.0.0"

IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 SurveyMail starting up...")
    logger.info(f"🌍 Environment: {'SERVERLESS' if IS_SERVERLESS else 'LOCAL'}")
    # Test connection first
    db_ok = test_connection()
    if db_ok:
        try:
            init_db()
        except Exception as e:
            logger.error(f"❌ Table creation failed: {e}")
    else:
        logger.error("❌ Database NOT connected — endpoints will fail")
    if not IS_SERVERLESS:
        start_scheduler()
    yield
    if not IS_SERVERLESS:
        stop_scheduler()
    logger.info("SurveyMail shut down")


app = FastAPI(
    title="SurveyMail",
    description="Send survey invitations by email, track opens and responses, and report campaign analytics.",
    version=VERSION,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(survey_router)
app.include_router(campaign_router)
app.include_router(tracking_router)
app.include_router(audience_router)


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "surveymail",
        "version": VERSION,
    }


@app.get("/debug/db", tags=["System"])
async def debug_db():
    """Debug endpoint — check database connectivity."""
    from surveymail.database import _mask_url

    error = None
    connected = False
    try:
        connected = test_connection()
    except Exception as e:
        error = str(e)

    backend = "postgresql" if db_url.startswith("postgresql") else "sqlite"
    return {
        "connected": connected,
        "backend": backend,
        "url": _mask_url(db_url),
        "environment": "serverless" if IS_SERVERLESS else "local",
        "error": error,
    }
