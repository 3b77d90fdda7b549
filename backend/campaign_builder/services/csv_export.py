"""
Google Ads Editor CSV export.

One data row per (campaign, ad group, ad, keyword, match type). The output is
UTF-8 with a BOM so Excel opens it correctly, RFC 4180 quoted, "\n" line endings.
"""

import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from campaign_builder.models import Ad, AdGroup, Campaign
from campaign_builder.repositories import AdGroupRepository, AdRepository, CampaignRepository

logger = logging.getLogger(__name__)

BOM = "\ufeff"
ALL_MATCH_TYPES = ["broad", "phrase", "exact"]

HEADERS = (
    ["Campaign", "Campaign Status", "Budget", "Ad Group", "Ad Group Status", "Max CPC", "Keyword", "Match Type"]
    + [f"Headline {i}" for i in range(1, 16)]
    + [f"Description {i}" for i in range(1, 5)]
    + ["Path 1", "Path 2", "Final URL", "Ad Status"]
)

STATUS_LABELS = {"active": "Enabled", "paused": "Paused", "draft": "Paused", "removed": "Removed"}


@dataclass
class AdGroupTree:
    ad_group: AdGroup
    ads: list[Ad] = field(default_factory=list)


@dataclass
class CampaignTree:
    campaign: Campaign
    ad_groups: list[AdGroupTree] = field(default_factory=list)


@dataclass
class ExportOptions:
    match_types: Optional[list[str]] = None
    default_max_cpc: float = 1.0


@dataclass
class ExportResult:
    content: str
    rows: int
    exported_campaigns: list[str]
    invalid_campaigns: list[dict]


async def load_campaign_trees(db: AsyncSession, campaign_ids: list[str]) -> list[CampaignTree]:
    """Campaigns with their ad groups and ads, preserving the requested id order."""
    campaigns = {c.id: c for c in await CampaignRepository(db).find_by_ids(campaign_ids)}
    ad_groups = AdGroupRepository(db)
    ads = AdRepository(db)

    trees = []
    for campaign_id in campaign_ids:
        campaign = campaigns.get(campaign_id)
        if campaign is None:
            continue
        tree = CampaignTree(campaign=campaign)
        for ad_group in await ad_groups.find_by_campaign_id(campaign.id):
            tree.ad_groups.append(AdGroupTree(ad_group, await ads.find_by_ad_group_id(ad_group.id)))
        trees.append(tree)
    return trees


def format_keyword(text: str, match_type: str) -> str:
    if match_type == "exact":
        return f"[{text}]"
    if match_type == "phrase":
        return f'"{text}"'
    return text


def format_status(status: Optional[str]) -> str:
    return STATUS_LABELS.get((status or "").lower(), "Paused")


def _final_url(ad: Ad, campaign: Campaign) -> str:
    return (ad.final_url or campaign.final_url or "").strip()


def validate_campaign_for_export(tree: CampaignTree) -> list[dict]:
    """Every problem that would make Editor reject an ad in this campaign."""
    errors = []
    for group in tree.ad_groups:
        for ad in group.ads:
            def err(field_name, message):
                errors.append({
                    "ad_group": group.ad_group.name,
                    "ad_id": ad.id,
                    "field": field_name,
                    "message": message,
                })

            headlines = ad.headlines or []
            descriptions = ad.descriptions or []
            if not 3 <= len(headlines) <= 15:
                err("headlines", f"Ads need 3-15 headlines, found {len(headlines)}")
            if not 2 <= len(descriptions) <= 4:
                err("descriptions", f"Ads need 2-4 descriptions, found {len(descriptions)}")
            for h in headlines:
                if len(h.get("text", "")) > 30:
                    err("headline", f'Headline "{h.get("text")}" exceeds 30 characters')
            for d in descriptions:
                if len(d) > 90:
                    err("description", f'Description "{d[:40]}..." exceeds 90 characters')
            for name in ("path1", "path2"):
                value = getattr(ad, name) or getattr(tree.campaign, name) or ""
                if len(value) > 15:
                    err(name, f"{name} exceeds 15 characters")
            if not _final_url(ad, tree.campaign):
                err("final_url", "Final URL is required")
    return errors


def _row(campaign: Campaign, ad_group: AdGroup, ad: Ad, keyword: dict, match_type: str, options: ExportOptions) -> list[str]:
    headlines = [h.get("text", "") for h in (ad.headlines or [])[:15]]
    descriptions = list((ad.descriptions or [])[:4])
    max_cpc = keyword.get("max_cpc")
    if max_cpc is None:
        max_cpc = options.default_max_cpc
    return [
        campaign.name,
        format_status(campaign.status),
        f"{campaign.budget or 0:.2f}",
        ad_group.name,
        format_status(ad_group.status),
        f"{float(max_cpc):.2f}",
        format_keyword(keyword.get("text", ""), match_type),
        match_type,
        *headlines, *[""] * (15 - len(headlines)),
        *descriptions, *[""] * (4 - len(descriptions)),
        ad.path1 or campaign.path1 or "",
        ad.path2 or campaign.path2 or "",
        _final_url(ad, campaign),
        format_status(ad.status),
    ]


def build_export(trees: list[CampaignTree], options: Optional[ExportOptions] = None) -> ExportResult:
    options = options or ExportOptions()
    match_types = [m for m in (options.match_types or []) if m in ALL_MATCH_TYPES] or ALL_MATCH_TYPES

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(HEADERS)

    rows = 0
    exported, invalid = [], []
    for tree in trees:
        errors = validate_campaign_for_export(tree)
        if errors:
            invalid.append({"campaign_id": tree.campaign.id, "campaign": tree.campaign.name, "errors": errors})
            continue
        exported.append(tree.campaign.id)
        for group in tree.ad_groups:
            keywords = group.ad_group.keywords or []
            if not group.ads or not keywords:
                logger.debug(f"Skipping ad group '{group.ad_group.name}': no ads or no keywords")
                continue
            for ad in group.ads:
                for keyword in keywords:
                    for match_type in match_types:
                        writer.writerow(_row(tree.campaign, group.ad_group, ad, keyword, match_type, options))
                        rows += 1

    logger.info(f"Exported {rows} CSV rows from {len(exported)} campaign(s); {len(invalid)} invalid")
    return ExportResult(
        content=BOM + buffer.getvalue(),
        rows=rows,
        exported_campaigns=exported,
        invalid_campaigns=invalid,
    )


def export_campaigns_csv(trees: list[CampaignTree], options: Optional[ExportOptions] = None) -> str:
    return build_export(trees, options).content
