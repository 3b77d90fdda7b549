"""
Import Service — Google Ads Editor exports, performance reports and search
term reports (CSV text, or rows already read from Google Sheets).

Editor imports are audited in the ``imports`` table and, when they overwrite
existing campaigns, preceded by a JSON snapshot of the campaign tree.
"""

import csv
import io
import logging
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_builder.models import (
    EntityStatus, ImportRecord, MatchType, PerformanceData, SearchTerm, Snapshot,
)
from campaign_builder.repositories import AdGroupRepository, AdRepository, CampaignRepository
from campaign_builder.repositories.ad_group_repository import keyword_key
from campaign_builder.serializers import serialize_ad, serialize_ad_group, serialize_campaign
from campaign_builder.utils import parse_date, safe_float, safe_int, utcnow

logger = logging.getLogger(__name__)

Rows = Union[str, list[dict]]


@dataclass
class ImportStats:
    campaigns_created: int = 0
    campaigns_updated: int = 0
    ad_groups_created: int = 0
    ad_groups_updated: int = 0
    ads_created: int = 0
    ads_skipped: int = 0
    keywords_created: int = 0
    performance_records_created: int = 0
    search_terms_created: int = 0


@dataclass
class ImportResult:
    success: bool
    import_id: Optional[str] = None
    stats: ImportStats = field(default_factory=ImportStats)
    errors: list[dict] = field(default_factory=list)
    warnings: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


# ── Row helpers ───────────────────────────────────────────────────────

def read_csv_rows(content: str) -> list[dict]:
    """DictReader over the text with a tolerated UTF-8 BOM and trimmed keys/values."""
    text = (content or "").lstrip("\ufeff")
    reader = csv.DictReader(io.StringIO(text))
    rows = []
    for raw in reader:
        row = {(k or "").strip(): (v or "").strip() for k, v in raw.items() if k is not None}
        if any(row.values()):
            rows.append(row)
    return rows


def _rows(source: Rows) -> list[dict]:
    return read_csv_rows(source) if isinstance(source, str) else list(source)


def get_value(row: dict, *names: str) -> str:
    """First non-blank value among the candidate column names (case-insensitive)."""
    lowered = {k.lower(): v for k, v in row.items()}
    for name in names:
        value = row.get(name)
        if value is None:
            value = lowered.get(name.lower())
        if value not in (None, ""):
            return str(value).strip()
    return ""


def parse_status(value: str, default: str = EntityStatus.ACTIVE.value) -> str:
    status = (value or "").strip().lower()
    if status in ("enabled", "active"):
        return EntityStatus.ACTIVE.value
    if status == "paused":
        return EntityStatus.PAUSED.value
    if status in ("removed", "deleted", "disabled"):
        return EntityStatus.DRAFT.value
    return default


def parse_match_type(value: str) -> str:
    match_type = (value or "").strip().lower()
    if match_type in ("exact", "[exact]"):
        return MatchType.EXACT.value
    if match_type in ("phrase", '"phrase"'):
        return MatchType.PHRASE.value
    return MatchType.BROAD.value


def strip_keyword_syntax(text: str) -> str:
    """'[foo]' and '"foo"' are Editor's exact/phrase notation; the stored text is bare."""
    text = (text or "").strip()
    if len(text) >= 2 and ((text[0] == "[" and text[-1] == "]") or (text[0] == '"' and text[-1] == '"')):
        return text[1:-1].strip()
    return text


def parse_rate(value: str) -> float:
    """'4.5%' → 0.045; bare numbers are taken as already fractional."""
    if value and "%" in value:
        return safe_float(value) / 100
    return safe_float(value)


class ImportService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.campaigns = CampaignRepository(db)
        self.ad_groups = AdGroupRepository(db)
        self.ads = AdRepository(db)

    # ── Snapshots ─────────────────────────────────────────────────────

    async def create_snapshot(self, campaign_id: str, snapshot_type: str = "import", description: str = "") -> Snapshot:
        campaign = await self.campaigns.find_by_id(campaign_id)
        groups = await self.ad_groups.find_by_campaign_id(campaign_id)
        data = {
            "campaign": serialize_campaign(campaign) if campaign else None,
            "ad_groups": [
                {**serialize_ad_group(g), "ads": [serialize_ad(a) for a in await self.ads.find_by_ad_group_id(g.id)]}
                for g in groups
            ],
        }
        snapshot = Snapshot(
            campaign_id=campaign_id,
            snapshot_type=snapshot_type,
            snapshot_data=data,
            description=description,
        )
        self.db.add(snapshot)
        await self.db.flush()
        return snapshot

    # ── Editor export ─────────────────────────────────────────────────

    def _group_editor_rows(self, rows: list[dict], result: ImportResult) -> dict:
        campaigns: dict[str, dict] = {}
        for index, row in enumerate(rows, start=1):
            campaign_name = get_value(row, "Campaign", "campaign")
            if not campaign_name:
                result.warnings.append({"row": index, "message": "Row missing campaign name, skipping"})
                continue

            entry = campaigns.setdefault(campaign_name, {
                "campaign": {
                    "name": campaign_name,
                    "status": parse_status(get_value(row, "Campaign Status", "campaign_status")),
                    "budget": safe_float(get_value(row, "Budget", "budget")),
                    "final_url": get_value(row, "Final URL", "final_url"),
                    "path1": get_value(row, "Path 1", "path1"),
                    "path2": get_value(row, "Path 2", "path2"),
                },
                "ad_groups": {},
            })

            ad_group_name = get_value(row, "Ad Group", "ad_group")
            if not ad_group_name:
                continue
            group = entry["ad_groups"].setdefault(ad_group_name, {
                "name": ad_group_name,
                "status": parse_status(get_value(row, "Ad Group Status", "ad_group_status")),
                "keywords": [],
                "ads": [],
            })

            keyword_text = strip_keyword_syntax(get_value(row, "Keyword", "keyword"))
            if keyword_text:
                max_cpc = safe_float(get_value(row, "Max CPC", "max_cpc"))
                keyword = {"text": keyword_text}
                if max_cpc:
                    keyword["max_cpc"] = max_cpc
                group["keywords"].append(keyword)

            headlines = [get_value(row, f"Headline {i}", f"headline{i}") for i in range(1, 16)]
            descriptions = [get_value(row, f"Description {i}", f"description{i}") for i in range(1, 5)]
            headlines = [h for h in headlines if h]
            descriptions = [d for d in descriptions if d]
            if headlines and descriptions:
                group["ads"].append({
                    "headlines": headlines,
                    "descriptions": descriptions,
                    "final_url": get_value(row, "Final URL", "final_url"),
                    "path1": get_value(row, "Path 1", "path1"),
                    "path2": get_value(row, "Path 2", "path2"),
                    "status": parse_status(get_value(row, "Ad Status", "ad_status")),
                })
        return campaigns

    async def import_editor_csv(
        self,
        content: str,
        filename: str,
        update_existing: bool = False,
        create_snapshot: bool = True,
    ) -> ImportResult:
        record = ImportRecord(
            filename=filename,
            file_type="csv",
            file_size=len(content or ""),
            import_type="editor_export",
            status="processing",
            raw_data=content,
        )
        self.db.add(record)
        await self.db.flush()

        result = ImportResult(success=False, import_id=record.id)
        try:
            rows = read_csv_rows(content)
            if not rows:
                result.errors.append({"message": "CSV file is empty or has no data rows"})
            else:
                grouped = self._group_editor_rows(rows, result)
                async with self.db.begin_nested():
                    for entry in grouped.values():
                        await self._import_campaign(entry, update_existing, create_snapshot, result)
                result.success = True
        except Exception as exc:
            logger.error(f"Editor import of '{filename}' failed: {exc}", exc_info=True)
            result.errors.append({"message": f"Fatal import error: {exc}"})
            result.success = False

        stats = result.stats
        record.status = "completed" if result.success else "failed"
        record.entities_imported = (
            stats.campaigns_created + stats.ad_groups_created + stats.ads_created + stats.keywords_created
            if result.success else 0
        )
        record.errors = result.errors
        record.import_metadata = {"stats": asdict(stats), "warnings": result.warnings}
        record.completed_at = utcnow()
        await self.db.flush()

        logger.info(f"Editor import '{filename}' {record.status}: {asdict(stats)}")
        return result

    async def _import_campaign(self, entry: dict, update_existing: bool, create_snapshot: bool, result: ImportResult):
        data = entry["campaign"]
        stats = result.stats
        existing = await self.campaigns.find_by_name(data["name"])

        if existing is not None and not update_existing:
            result.warnings.append({"message": f'Campaign "{data["name"]}" already exists, skipping'})
            return
        if existing is not None:
            if create_snapshot:
                await self.create_snapshot(existing.id, "import", "Pre-import snapshot")
            campaign = await self.campaigns.update(existing.id, data)
            stats.campaigns_updated += 1
        else:
            campaign = await self.campaigns.create(data)
            stats.campaigns_created += 1

        for group_data in entry["ad_groups"].values():
            ad_group = await self.ad_groups.find_by_name(campaign.id, group_data["name"])
            if ad_group is not None and not update_existing:
                continue
            if ad_group is not None:
                ad_group.status = group_data["status"]
                added = await self.ad_groups.add_keywords(ad_group, [k["text"] for k in group_data["keywords"]])
                stats.keywords_created += len(added)
                stats.ad_groups_updated += 1
                await self.db.flush()
            else:
                ad_group = await self.ad_groups.create({
                    "campaign_id": campaign.id,
                    "name": group_data["name"],
                    "status": group_data["status"],
                    "keywords": group_data["keywords"],
                })
                stats.ad_groups_created += 1
                stats.keywords_created += len(ad_group.keywords)

            existing_sets = {
                tuple(sorted(keyword_key(h.get("text", "")) for h in ad.headlines or []))
                for ad in await self.ads.find_by_ad_group_id(ad_group.id)
            }
            for ad_data in group_data["ads"]:
                headline_set = tuple(sorted(keyword_key(h) for h in ad_data["headlines"]))
                if headline_set in existing_sets:
                    stats.ads_skipped += 1
                    continue
                existing_sets.add(headline_set)
                await self.ads.create({"ad_group_id": ad_group.id, **ad_data})
                stats.ads_created += 1

    # ── Reports ───────────────────────────────────────────────────────

    async def _campaign_id(self, name: str, cache: dict) -> Optional[str]:
        if name not in cache:
            campaign = await self.campaigns.find_by_name(name)
            cache[name] = campaign.id if campaign else None
        return cache[name]

    async def _ad_group_id(self, campaign_id: str, name: str, cache: dict) -> Optional[str]:
        key = (campaign_id, name)
        if key not in cache:
            group = await self.ad_groups.find_by_name(campaign_id, name)
            cache[key] = group.id if group else None
        return cache[key]

    async def import_performance_data(
        self,
        source: Rows,
        date_range_start: Union[str, date],
        date_range_end: Union[str, date],
    ) -> ImportResult:
        start, end = parse_date(date_range_start), parse_date(date_range_end)
        result = ImportResult(success=True)
        campaign_cache, group_cache = {}, {}

        for index, row in enumerate(_rows(source), start=1):
            campaign_name = get_value(row, "Campaign", "campaign")
            if not campaign_name:
                continue
            campaign_id = await self._campaign_id(campaign_name, campaign_cache)
            if campaign_id is None:
                result.warnings.append({"row": index, "message": f'Campaign "{campaign_name}" not found'})
                continue

            entity_type, entity_id = "campaign", campaign_id
            ad_group_name = get_value(row, "Ad Group", "Ad group", "ad_group")
            if ad_group_name:
                ad_group_id = await self._ad_group_id(campaign_id, ad_group_name, group_cache)
                if ad_group_id is None:
                    result.warnings.append({"row": index, "message": f'Ad group "{ad_group_name}" not found'})
                else:
                    entity_type, entity_id = "ad_group", ad_group_id

            impressions = safe_int(get_value(row, "Impressions", "Impr.", "impressions"))
            clicks = safe_int(get_value(row, "Clicks", "clicks"))
            cost = safe_float(get_value(row, "Cost", "cost"))
            conversions = safe_float(get_value(row, "Conversions", "conversions"))
            ctr_raw = get_value(row, "CTR", "ctr")
            conv_rate_raw = get_value(row, "Conv. rate", "conversion_rate")

            self.db.add(PerformanceData(
                entity_type=entity_type,
                entity_id=entity_id,
                date_range_start=start,
                date_range_end=end,
                impressions=impressions,
                clicks=clicks,
                cost=cost,
                conversions=conversions,
                ctr=parse_rate(ctr_raw) if ctr_raw else (clicks / impressions if impressions else 0.0),
                cpc=safe_float(get_value(row, "Avg. CPC", "avg_cpc", "cpc")) or (cost / clicks if clicks else 0.0),
                cpa=safe_float(get_value(row, "Cost / conv.", "cpa")) or (cost / conversions if conversions else 0.0),
                conversion_rate=parse_rate(conv_rate_raw) if conv_rate_raw else (conversions / clicks if clicks else 0.0),
                impression_share=parse_rate(get_value(row, "Impr. share", "Search impr. share", "impression_share")),
                quality_score=safe_float(get_value(row, "Quality Score", "quality_score")),
                search_lost_is_rank=parse_rate(get_value(row, "Search lost IS (rank)", "search_lost_is_rank")),
                search_lost_is_budget=parse_rate(get_value(row, "Search lost IS (budget)", "search_lost_is_budget")),
            ))
            result.stats.performance_records_created += 1

        await self.db.flush()
        logger.info(f"Imported {result.stats.performance_records_created} performance row(s)")
        return result

    async def import_search_terms(
        self,
        source: Rows,
        date_range_start: Union[str, date],
        date_range_end: Union[str, date],
    ) -> ImportResult:
        start, end = parse_date(date_range_start), parse_date(date_range_end)
        result = ImportResult(success=True)
        campaign_cache, group_cache = {}, {}

        for index, row in enumerate(_rows(source), start=1):
            term = get_value(row, "Search term", "search_term")
            campaign_name = get_value(row, "Campaign", "campaign")
            ad_group_name = get_value(row, "Ad group", "Ad Group", "ad_group")
            if not term or not campaign_name or not ad_group_name:
                continue

            campaign_id = await self._campaign_id(campaign_name, campaign_cache)
            if campaign_id is None:
                result.warnings.append({"row": index, "message": f'Campaign "{campaign_name}" not found'})
                continue
            ad_group_id = await self._ad_group_id(campaign_id, ad_group_name, group_cache)
            if ad_group_id is None:
                result.warnings.append({"row": index, "message": f'Ad group "{ad_group_name}" not found'})
                continue

            impressions = safe_int(get_value(row, "Impressions", "Impr.", "impressions"))
            clicks = safe_int(get_value(row, "Clicks", "clicks"))
            cost = safe_float(get_value(row, "Cost", "cost"))
            conversions = safe_float(get_value(row, "Conversions", "conversions"))

            self.db.add(SearchTerm(
                campaign_id=campaign_id,
                ad_group_id=ad_group_id,
                search_term=term,
                match_type=parse_match_type(get_value(row, "Match type", "match_type")),
                impressions=impressions,
                clicks=clicks,
                cost=cost,
                conversions=conversions,
                ctr=clicks / impressions if impressions else 0.0,
                cpc=cost / clicks if clicks else 0.0,
                conversion_rate=conversions / clicks if clicks else 0.0,
                date_range_start=start,
                date_range_end=end,
            ))
            result.stats.search_terms_created += 1

        await self.db.flush()
        logger.info(f"Imported {result.stats.search_terms_created} search term row(s)")
        return result

    # ── History ───────────────────────────────────────────────────────

    async def list_imports(self, limit: int = 50) -> list[ImportRecord]:
        result = await self.db.execute(
            select(ImportRecord).order_by(ImportRecord.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def get_import(self, import_id: str) -> Optional[ImportRecord]:
        result = await self.db.execute(select(ImportRecord).where(ImportRecord.id == import_id))
        return result.scalar_one_or_none()
