"""
Shared fixtures: every test gets its own in-memory SQLite app with the schema applied.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from campaign_builder.config import Settings
from campaign_builder.database import init_db
from campaign_builder.main import create_app


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        environment="development",
        database_url="sqlite+aiosqlite:///:memory:",
        api_key="",
        cron_secret="cron-secret",
        encryption_key="",
        anthropic_api_key="",
        openai_api_key="",
        gemini_api_key="",
    )


@pytest.fixture
async def app(settings):
    # ASGITransport does not run the lifespan, so migrate here.
    application = create_app(settings)
    await init_db(application.state.engine)
    yield application
    await application.state.engine.dispose()


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
async def db(app):
    async with app.state.sessionmaker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def make_campaign(db):
    from campaign_builder.repositories import CampaignRepository

    async def _make(**overrides):
        data = {"name": "Plumbing - Search", "budget": 50.0, "status": "active", "final_url": "https://example.com"}
        data.update(overrides)
        return await CampaignRepository(db).create(data)

    return _make


@pytest.fixture
def make_ad_group(db):
    from campaign_builder.repositories import AdGroupRepository

    async def _make(campaign_id, name="Emergency Plumber", keywords=None, status="active"):
        return await AdGroupRepository(db).create({
            "campaign_id": campaign_id,
            "name": name,
            "keywords": keywords if keywords is not None else ["emergency plumber"],
            "status": status,
        })

    return _make


@pytest.fixture
def make_ad(db):
    from campaign_builder.repositories import AdRepository

    async def _make(ad_group_id, headlines=None, descriptions=None, **overrides):
        data = {
            "ad_group_id": ad_group_id,
            "headlines": headlines if headlines is not None else [
                {"text": "Emergency Plumber", "category": "KEYWORD"},
                {"text": "Available 24/7", "category": "VALUE"},
                {"text": "Call Now", "category": "CTA"},
            ],
            "descriptions": descriptions if descriptions is not None else [
                "Licensed plumbers at your door within the hour.",
                "Upfront pricing. No call-out fee on weekdays.",
            ],
            "final_url": "https://example.com/emergency",
            "status": "active",
        }
        data.update(overrides)
        return await AdRepository(db).create(data)

    return _make
