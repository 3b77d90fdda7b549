"""Local/production entry point: `python run.py` (settings come from the environment or .env)."""

import uvicorn

from campaign_builder.config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "campaign_builder.main:app",
        host=settings.host,
        port=settings.port,
        reload=not settings.is_production,
        workers=settings.web_concurrency if settings.is_production else 1,
    )
