"""
Google Sheets Sync — pulls performance, search term and asset performance
tabs written by a Google Ads Script into the local tables.

Authentication is the service-account flow: an RS256 JWT assertion signed with
the stored private key is exchanged for a short-lived access token.
"""

import logging
import time
from datetime import date, timedelta
from typing import Optional

import httpx
from jose import jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_builder.config import Settings, get_settings
from campaign_builder.crypto import decrypt_value, encrypt_value
from campaign_builder.errors import AppError
from campaign_builder.models import Ad, AdGroup, AssetPerformance, Campaign, SheetsConfig
from campaign_builder.repositories.ad_group_repository import keyword_key
from campaign_builder.services.import_service import ImportService, get_value
from campaign_builder.utils import isoformat, safe_int, utcnow

logger = logging.getLogger(__name__)

TOKEN_URL = "https://oauth2.googleapis.com/token"
SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"
SCOPE = "https://www.googleapis.com/auth/spreadsheets.readonly"
DEFAULT_SYNC_DAYS = 30


def build_assertion(client_email: str, private_key: str, now: Optional[int] = None) -> str:
    issued = int(now if now is not None else time.time())
    claims = {
        "iss": client_email,
        "scope": SCOPE,
        "aud": TOKEN_URL,
        "iat": issued,
        "exp": issued + 3600,
    }
    return jwt.encode(claims, private_key, algorithm="RS256")


def rows_to_dicts(values: list[list]) -> list[dict]:
    """First row is the header; short rows are padded with blanks."""
    if not values:
        return []
    headers = [str(h).strip() for h in values[0]]
    rows = []
    for raw in values[1:]:
        cells = [str(c).strip() for c in raw] + [""] * (len(headers) - len(raw))
        row = dict(zip(headers, cells))
        if any(row.values()):
            rows.append(row)
    return rows


class SheetsService:
    def __init__(
        self,
        db: AsyncSession,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self._http = http_client
        self._owns_http = http_client is None

    # ── Config ────────────────────────────────────────────────────────

    async def get_config(self) -> Optional[SheetsConfig]:
        result = await self.db.execute(select(SheetsConfig).order_by(SheetsConfig.created_at.desc()).limit(1))
        return result.scalar_one_or_none()

    async def save_config(
        self,
        spreadsheet_id: str,
        client_email: str,
        private_key: str,
        performance_sheet: str = "Performance",
        search_terms_sheet: str = "SearchTerms",
        asset_performance_sheet: str = "AssetPerformance",
    ) -> SheetsConfig:
        config = await self.get_config()
        if config is None:
            config = SheetsConfig(spreadsheet_id=spreadsheet_id, client_email=client_email, private_key="")
            self.db.add(config)
        config.spreadsheet_id = spreadsheet_id
        config.client_email = client_email
        config.private_key = encrypt_value(private_key, self.settings)
        config.performance_sheet = performance_sheet
        config.search_terms_sheet = search_terms_sheet
        config.asset_performance_sheet = asset_performance_sheet
        await self.db.flush()
        logger.info(f"Saved Google Sheets config for spreadsheet {spreadsheet_id}")
        return config

    async def delete_config(self) -> bool:
        config = await self.get_config()
        if config is None:
            return False
        await self.db.delete(config)
        await self.db.flush()
        return True

    @staticmethod
    def masked(config: SheetsConfig) -> dict:
        return {
            "id": config.id,
            "spreadsheet_id": config.spreadsheet_id,
            "client_email": config.client_email,
            "private_key": "••••••••" if config.private_key else "",
            "performance_sheet": config.performance_sheet,
            "search_terms_sheet": config.search_terms_sheet,
            "asset_performance_sheet": config.asset_performance_sheet,
            "last_synced_at": isoformat(config.last_synced_at),
        }

    # ── Google API ────────────────────────────────────────────────────

    async def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.settings.ai_timeout_seconds)
        return self._http

    async def _access_token(self, config: SheetsConfig) -> str:
        assertion = build_assertion(config.client_email, decrypt_value(config.private_key, self.settings))
        client = await self._client()
        resp = await client.post(
            TOKEN_URL,
            data={"grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer", "assertion": assertion},
        )
        if resp.status_code != 200:
            logger.error(f"Google token exchange failed: {resp.status_code} {resp.text[:200]}")
            raise AppError(
                "Google service-account authentication failed",
                code="SHEETS_AUTH_ERROR",
                status_code=502,
            )
        return resp.json()["access_token"]

    async def _read_sheet(self, config: SheetsConfig, token: str, sheet: str) -> list[dict]:
        client = await self._client()
        resp = await client.get(
            f"{SHEETS_API}/{config.spreadsheet_id}/values/{sheet}!A:Z",
            headers={"Authorization": f"Bearer {token}"},
        )
        resp.raise_for_status()
        return rows_to_dicts(resp.json().get("values") or [])

    # ── Sync ──────────────────────────────────────────────────────────

    async def sync(self, date_range_start: Optional[date] = None, date_range_end: Optional[date] = None) -> dict:
        config = await self.get_config()
        if config is None:
            raise AppError("Google Sheets is not configured", code="SHEETS_NOT_CONFIGURED", status_code=400)

        end = date_range_end or utcnow().date()
        start = date_range_start or end - timedelta(days=DEFAULT_SYNC_DAYS)
        importer = ImportService(self.db)
        result = {"performance_rows": 0, "search_term_rows": 0, "asset_rows": 0, "errors": []}

        try:
            token = await self._access_token(config)
            if config.performance_sheet:
                try:
                    rows = await self._read_sheet(config, token, config.performance_sheet)
                    imported = await importer.import_performance_data(rows, start, end)
                    result["performance_rows"] = imported.stats.performance_records_created
                except httpx.HTTPError as exc:
                    result["errors"].append(f"Error fetching performance data: {exc}")

            if config.search_terms_sheet:
                try:
                    rows = await self._read_sheet(config, token, config.search_terms_sheet)
                    imported = await importer.import_search_terms(rows, start, end)
                    result["search_term_rows"] = imported.stats.search_terms_created
                except httpx.HTTPError as exc:
                    result["errors"].append(f"Error fetching search terms: {exc}")

            if config.asset_performance_sheet:
                try:
                    rows = await self._read_sheet(config, token, config.asset_performance_sheet)
                    result["asset_rows"] = await self.import_asset_rows(rows, start, end)
                except httpx.HTTPError as exc:
                    result["errors"].append(f"Error fetching asset performance: {exc}")
        finally:
            if self._owns_http and self._http is not None:
                await self._http.aclose()
                self._http = None

        config.last_synced_at = utcnow()
        await self.db.flush()
        logger.info(
            f"Sheets sync: {result['performance_rows']} performance, {result['search_term_rows']} search terms, "
            f"{result['asset_rows']} assets, {len(result['errors'])} error(s)"
        )
        return result

    async def import_asset_rows(self, rows: list[dict], start: date, end: date) -> int:
        """Match each row to an ad by headline/description text and record its label."""
        created = 0
        for row in rows:
            campaign_name = get_value(row, "Campaign", "campaign")
            asset_type = get_value(row, "Asset Type", "asset_type").lower()
            asset_text = get_value(row, "Asset Text", "asset_text")
            if not campaign_name or asset_type not in ("headline", "description") or not asset_text:
                continue

            query = (
                select(Ad)
                .join(AdGroup, Ad.ad_group_id == AdGroup.id)
                .join(Campaign, AdGroup.campaign_id == Campaign.id)
                .where(Campaign.name == campaign_name)
            )
            ad_group_name = get_value(row, "Ad Group", "ad_group")
            if ad_group_name:
                query = query.where(AdGroup.name == ad_group_name)
            ads = (await self.db.execute(query)).scalars().all()

            target = keyword_key(asset_text)
            position = get_value(row, "Pinned Position", "Position", "asset_position")
            for ad in ads:
                if asset_type == "headline":
                    texts = [h.get("text", "") for h in ad.headlines or []]
                else:
                    texts = list(ad.descriptions or [])
                if target not in {keyword_key(t) for t in texts}:
                    continue
                self.db.add(AssetPerformance(
                    ad_id=ad.id,
                    asset_type=asset_type,
                    asset_text=asset_text,
                    asset_position=safe_int(position) if position else None,
                    performance_label=get_value(row, "Performance Label", "performance_label", "Performance") or None,
                    impressions=safe_int(get_value(row, "Impressions", "impressions")),
                    date_range_start=start,
                    date_range_end=end,
                ))
                created += 1
        await self.db.flush()
        return created
