"""
Google Ads Campaign Builder — FastAPI Backend
Campaign/ad group/ad management, recommendations, automation, AI copy
generation and Google Ads Editor CSV import/export. Data persisted to SQLite.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from campaign_builder.auth import require_auth
from campaign_builder.config import Settings, get_settings
from campaign_builder.database import check_db_connection, create_engine_for, create_sessionmaker, init_db
from campaign_builder.errors import register_exception_handlers
from campaign_builder.routers import (
    ad_groups, ads, ai, automation, campaigns, cron, export, imports, keywords,
    negative_keywords, recommendations, sheets,
)
from campaign_builder.utils import success_response

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    engine = create_engine_for(settings.database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Google Ads Campaign Builder...")
        await init_db(engine)
        yield
        logger.info("Shutting down...")
        await engine.dispose()

    app = FastAPI(
        title="Google Ads Campaign Builder",
        description="Campaign building, recommendations and automation for Google Ads",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.sessionmaker = create_sessionmaker(engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    # ── Register Routers (all require auth) ──────────────────────────────
    _auth = [Depends(require_auth)]
    app.include_router(campaigns.router, prefix="/api/campaigns", tags=["Campaigns"], dependencies=_auth)
    app.include_router(ad_groups.router, prefix="/api/ad-groups", tags=["Ad Groups"], dependencies=_auth)
    app.include_router(ads.router, prefix="/api/ads", tags=["Ads"], dependencies=_auth)
    app.include_router(
        negative_keywords.router, prefix="/api/negative-keywords", tags=["Negative Keywords"], dependencies=_auth,
    )
    app.include_router(
        recommendations.router, prefix="/api/recommendations", tags=["Recommendations"], dependencies=_auth,
    )
    app.include_router(automation.router, prefix="/api/automation", tags=["Automation"], dependencies=_auth)
    app.include_router(ai.router, prefix="/api/ai", tags=["AI"], dependencies=_auth)
    app.include_router(keywords.router, prefix="/api/keywords", tags=["Keywords"], dependencies=_auth)
    app.include_router(export.router, prefix="/api/export", tags=["Export"], dependencies=_auth)
    app.include_router(imports.router, prefix="/api/import", tags=["Import"], dependencies=_auth)
    app.include_router(sheets.router, prefix="/api/sheets", tags=["Google Sheets"], dependencies=_auth)
    app.include_router(cron.router, prefix="/api")  # No API key; uses CRON_SECRET

    @app.get("/api/health")
    async def health_check(request: Request):
        db_ok = await check_db_connection(request.app.state.engine)
        return success_response({
            "status": "healthy" if db_ok else "degraded",
            "service": "Google Ads Campaign Builder",
            "database": "connected" if db_ok else "disconnected",
            "environment": request.app.state.settings.environment,
        })

    return app


app = create_app()
