"""
Tests for the Google Ads Editor CSV export.
"""

import csv
import io

import pytest

from campaign_builder.services.csv_export import (
    BOM,
    HEADERS,
    ExportOptions,
    build_export,
    export_campaigns_csv,
    format_keyword,
    format_status,
    load_campaign_trees,
)


def _rows(content):
    assert content.startswith(BOM)
    return list(csv.reader(io.StringIO(content[len(BOM):])))


def test_headers_layout():
    assert len(HEADERS) == 31
    assert HEADERS[:8] == ["Campaign", "Campaign Status", "Budget", "Ad Group", "Ad Group Status", "Max CPC", "Keyword", "Match Type"]
    assert HEADERS[8] == "Headline 1"
    assert HEADERS[-1] == "Ad Status"


def test_keyword_and_status_formatting():
    assert format_keyword("plumber", "exact") == "[plumber]"
    assert format_keyword("plumber", "phrase") == '"plumber"'
    assert format_keyword("plumber", "broad") == "plumber"
    assert format_status("active") == "Enabled"
    assert format_status("draft") == "Paused"
    assert format_status(None) == "Paused"


@pytest.mark.anyio
async def test_one_row_per_keyword_and_match_type(db, make_campaign, make_ad_group, make_ad):
    campaign = await make_campaign(status="draft", budget=42.5)
    group = await make_ad_group(campaign.id, keywords=["emergency plumber", {"text": "burst pipe", "max_cpc": 3}])
    await make_ad(group.id)

    trees = await load_campaign_trees(db, [campaign.id])
    result = build_export(trees)
    rows = _rows(result.content)

    assert rows[0] == HEADERS
    data = rows[1:]
    assert result.rows == len(data) == 6
    assert [r[6] for r in data[:3]] == ["emergency plumber", '"emergency plumber"', "[emergency plumber]"]
    assert all(len(r) == 31 for r in data)

    first = data[0]
    assert first[1] == "Paused"
    assert first[2] == "42.50"
    assert first[5] == "1.00"
    assert data[3][5] == "3.00"
    assert first[8:11] == ["Emergency Plumber", "Available 24/7", "Call Now"]
    assert first[11] == ""
    assert first[29] == "https://example.com/emergency"
    assert first[30] == "Enabled"


@pytest.mark.anyio
async def test_match_type_filter_and_cpc_default(db, make_campaign, make_ad_group, make_ad):
    campaign = await make_campaign()
    group = await make_ad_group(campaign.id)
    await make_ad(group.id)

    trees = await load_campaign_trees(db, [campaign.id])
    result = build_export(trees, ExportOptions(match_types=["exact", "bogus"], default_max_cpc=2.25))
    data = _rows(result.content)[1:]
    assert [(r[6], r[7], r[5]) for r in data] == [("[emergency plumber]", "exact", "2.25")]


@pytest.mark.anyio
async def test_invalid_campaign_is_skipped(db, make_campaign, make_ad_group, make_ad):
    good = await make_campaign(name="Good")
    bad = await make_campaign(name="Bad")
    good_group = await make_ad_group(good.id)
    bad_group = await make_ad_group(bad.id)
    await make_ad(good_group.id)
    await make_ad(bad_group.id, headlines=[{"text": "Only One", "category": "GENERAL"}])

    trees = await load_campaign_trees(db, [bad.id, good.id, "missing"])
    assert [t.campaign.id for t in trees] == [bad.id, good.id]

    result = build_export(trees)
    assert result.exported_campaigns == [good.id]
    assert result.invalid_campaigns[0]["campaign_id"] == bad.id
    assert result.invalid_campaigns[0]["errors"][0]["field"] == "headlines"
    assert {r[0] for r in _rows(result.content)[1:]} == {"Good"}


@pytest.mark.anyio
async def test_groups_without_keywords_produce_no_rows(db, make_campaign, make_ad_group, make_ad):
    campaign = await make_campaign()
    group = await make_ad_group(campaign.id, keywords=[])
    await make_ad(group.id)

    content = export_campaigns_csv(await load_campaign_trees(db, [campaign.id]))
    assert _rows(content) == [HEADERS]
