"""
Tests for Editor CSV, performance report and search term report imports.
"""

import csv
import io
from datetime import date

import pytest
from sqlalchemy import select

from campaign_builder.models import PerformanceData, SearchTerm, Snapshot
from campaign_builder.repositories import AdGroupRepository, AdRepository, CampaignRepository
from campaign_builder.services.import_service import (
    ImportService,
    get_value,
    parse_match_type,
    parse_rate,
    parse_status,
    read_csv_rows,
    strip_keyword_syntax,
)

EDITOR_HEADERS = [
    "Campaign", "Campaign Status", "Budget", "Ad Group", "Ad Group Status", "Max CPC", "Keyword",
    "Headline 1", "Headline 2", "Headline 3", "Description 1", "Description 2", "Final URL", "Ad Status",
]


def _csv(headers, rows, bom=True):
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return ("\ufeff" if bom else "") + buffer.getvalue()


def _editor_row(keyword, campaign="Roofing", group="Repairs", headlines=("Roof Repair", "Free Quotes", "Call Today")):
    return [
        campaign, "Enabled", "75", group, "Paused", "2.50", keyword,
        *headlines, "Local roofers with 20 years experience.", "Insurance work welcome.",
        "https://roof.example.com", "Enabled",
    ]


def test_row_helpers():
    rows = read_csv_rows("\ufeffCampaign , Budget\n Roofing , 75\n,\n")
    assert rows == [{"Campaign": "Roofing", "Budget": "75"}]
    assert get_value({"campaign": "x", "Budget": ""}, "Budget", "CAMPAIGN") == "x"
    assert get_value({}, "Campaign") == ""
    assert parse_status("Enabled") == "active"
    assert parse_status("Removed") == "draft"
    assert parse_status("weird", default="paused") == "paused"
    assert parse_match_type("[Exact]") == "exact"
    assert parse_match_type("Phrase") == "phrase"
    assert parse_match_type("") == "broad"
    assert strip_keyword_syntax("[roof repair]") == "roof repair"
    assert strip_keyword_syntax('"roof repair"') == "roof repair"
    assert parse_rate("4.5%") == pytest.approx(0.045)
    assert parse_rate("0.2") == pytest.approx(0.2)


@pytest.mark.anyio
async def test_editor_import_creates_tree_and_dedupes_ads(db):
    content = _csv(EDITOR_HEADERS, [
        _editor_row("[roof repair]"),
        _editor_row('"leaking roof"'),
        _editor_row("roof repair"),
        _editor_row("", campaign=""),
    ])

    result = await ImportService(db).import_editor_csv(content, "editor.csv")

    assert result.success is True
    stats = result.stats
    assert stats.campaigns_created == 1
    assert stats.ad_groups_created == 1
    assert stats.keywords_created == 2
    assert stats.ads_created == 1
    assert stats.ads_skipped == 2
    assert result.warnings[0]["row"] == 4

    campaign = await CampaignRepository(db).find_by_name("Roofing")
    assert campaign.status == "active"
    assert campaign.budget == 75.0
    group = await AdGroupRepository(db).find_by_name(campaign.id, "Repairs")
    assert group.status == "paused"
    assert [k["text"] for k in group.keywords] == ["roof repair", "leaking roof"]
    assert group.keywords[0]["max_cpc"] == 2.5
    ads = await AdRepository(db).find_by_ad_group_id(group.id)
    assert [h["text"] for h in ads[0].headlines] == ["Roof Repair", "Free Quotes", "Call Today"]

    record = await ImportService(db).get_import(result.import_id)
    assert record.status == "completed"
    assert record.entities_imported == 5
    assert record.import_metadata["stats"]["ads_skipped"] == 2


@pytest.mark.anyio
async def test_existing_campaign_skipped_without_update(db, make_campaign):
    await make_campaign(name="Roofing")
    result = await ImportService(db).import_editor_csv(_csv(EDITOR_HEADERS, [_editor_row("roof")]), "again.csv")
    assert result.success is True
    assert result.stats.campaigns_created == 0
    assert "already exists" in result.warnings[0]["message"]


@pytest.mark.anyio
async def test_update_existing_takes_snapshot_and_merges(db, make_campaign, make_ad_group):
    campaign = await make_campaign(name="Roofing", budget=10.0)
    await make_ad_group(campaign.id, name="Repairs", keywords=["roof repair"])

    content = _csv(EDITOR_HEADERS, [_editor_row("Roof Repair"), _editor_row("gutter cleaning")])
    result = await ImportService(db).import_editor_csv(content, "update.csv", update_existing=True)

    assert result.success is True
    assert result.stats.campaigns_updated == 1
    assert result.stats.ad_groups_updated == 1
    assert result.stats.keywords_created == 1
    assert result.stats.ads_created == 1

    snapshots = (await db.execute(select(Snapshot).where(Snapshot.campaign_id == campaign.id))).scalars().all()
    assert len(snapshots) == 1
    assert snapshots[0].snapshot_data["campaign"]["budget"] == 10.0
    assert (await CampaignRepository(db).find_by_id(campaign.id)).budget == 75.0


@pytest.mark.anyio
async def test_empty_editor_file_fails(db):
    result = await ImportService(db).import_editor_csv("Campaign,Budget\n", "empty.csv")
    assert result.success is False
    record = await ImportService(db).get_import(result.import_id)
    assert record.status == "failed"
    assert record.entities_imported == 0
    assert [r.id for r in await ImportService(db).list_imports()] == [result.import_id]


@pytest.mark.anyio
async def test_performance_import_resolves_entities(db, make_campaign, make_ad_group):
    campaign = await make_campaign(name="Roofing")
    group = await make_ad_group(campaign.id, name="Repairs")
    content = _csv(
        ["Campaign", "Ad Group", "Impressions", "Clicks", "Cost", "Conversions", "CTR", "Impr. share"],
        [
            ["Roofing", "", "1,000", "50", "$100.00", "5", "5%", "40%"],
            ["Roofing", "Repairs", "400", "20", "30", "0", "", ""],
            ["Roofing", "Unknown", "10", "1", "1", "0", "", ""],
            ["Nowhere", "", "10", "1", "1", "0", "", ""],
        ],
    )

    result = await ImportService(db).import_performance_data(content, "2026-09-01", "2026-09-30")

    assert result.stats.performance_records_created == 3
    assert len(result.warnings) == 2
    records = (await db.execute(select(PerformanceData))).scalars().all()
    by_type = {}
    for r in records:
        by_type.setdefault(r.entity_type, []).append(r)
    campaign_row = next(r for r in by_type["campaign"] if r.impressions == 1000)
    assert campaign_row.entity_id == campaign.id
    assert campaign_row.ctr == pytest.approx(0.05)
    assert campaign_row.cpa == pytest.approx(20.0)
    assert campaign_row.impression_share == pytest.approx(0.4)
    assert campaign_row.date_range_start == date(2026, 9, 1)
    group_row = by_type["ad_group"][0]
    assert group_row.entity_id == group.id
    assert group_row.ctr == pytest.approx(0.05)
    assert group_row.cpc == pytest.approx(1.5)


@pytest.mark.anyio
async def test_search_terms_import_accepts_sheet_rows(db, make_campaign, make_ad_group):
    campaign = await make_campaign(name="Roofing")
    group = await make_ad_group(campaign.id, name="Repairs")
    rows = [
        {"Search term": "roof repair cost", "Campaign": "Roofing", "Ad group": "Repairs",
         "Match type": "Exact", "Impressions": "200", "Clicks": "10", "Cost": "25", "Conversions": "2"},
        {"Search term": "", "Campaign": "Roofing", "Ad group": "Repairs"},
        {"Search term": "roofing jobs", "Campaign": "Roofing", "Ad group": "Missing"},
    ]

    result = await ImportService(db).import_search_terms(rows, date(2026, 9, 1), date(2026, 9, 30))

    assert result.stats.search_terms_created == 1
    assert result.warnings == [{"row": 3, "message": 'Ad group "Missing" not found'}]
    term = (await db.execute(select(SearchTerm))).scalar_one()
    assert term.ad_group_id == group.id
    assert term.match_type == "exact"
    assert term.ctr == pytest.approx(0.05)
    assert term.conversion_rate == pytest.approx(0.2)
