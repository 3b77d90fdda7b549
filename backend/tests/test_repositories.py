"""
Tests for the per-entity repositories: defaults, embedded lists and cascades.
"""

import pytest

from campaign_builder.repositories import (
    AdGroupRepository, AdRepository, CampaignRepository, NegativeKeywordRepository,
)
from campaign_builder.repositories.ad_group_repository import normalize_keywords
from campaign_builder.repositories.ad_repository import normalize_headlines


@pytest.mark.anyio
async def test_campaign_defaults(db):
    repo = CampaignRepository(db)
    created = await repo.create({"name": "Defaults"})

    found = await repo.find_by_id(created.id)
    assert found.status == "draft"
    assert found.budget == 0
    assert found.location == "United States"
    assert found.global_descriptions == []


@pytest.mark.anyio
async def test_delete_campaign_cascades_to_ad_groups_and_ads(db, make_campaign, make_ad_group, make_ad):
    campaign = await make_campaign()
    group_a = await make_ad_group(campaign.id, name="A")
    group_b = await make_ad_group(campaign.id, name="B")
    await make_ad(group_a.id)
    await make_ad(group_b.id)
    await NegativeKeywordRepository(db).create(campaign.id, "free")

    assert await CampaignRepository(db).delete(campaign.id) is True

    assert await AdGroupRepository(db).find_by_campaign_id(campaign.id) == []
    for group_id in (group_a.id, group_b.id):
        assert await AdRepository(db).find_by_ad_group_id(group_id) == []
    assert await NegativeKeywordRepository(db).count_for_campaign(campaign.id) == 0


@pytest.mark.anyio
async def test_delete_missing_returns_false(db):
    assert await CampaignRepository(db).delete("nope") is False


@pytest.mark.anyio
async def test_search_by_name_is_case_insensitive(db, make_campaign):
    await make_campaign(name="Plumbing - Search")
    await make_campaign(name="Roofing - Search")
    results = await CampaignRepository(db).search_by_name("PLUMB")
    assert [c.name for c in results] == ["Plumbing - Search"]


def test_normalize_keywords_dedupes_case_insensitively():
    keywords = normalize_keywords(["Plumber", " plumber ", {"text": "Drain Repair", "max_cpc": "2.5"}, ""])
    assert [k["text"] for k in keywords] == ["Plumber", "Drain Repair"]
    assert keywords[1]["max_cpc"] == 2.5
    assert all(k["id"] for k in keywords)


def test_normalize_headlines_defaults_unknown_category():
    headlines = normalize_headlines(["Call Now", {"text": "Save 20%", "category": "value"}, {"text": "X", "category": "odd"}])
    assert headlines == [
        {"text": "Call Now", "category": "GENERAL"},
        {"text": "Save 20%", "category": "VALUE"},
        {"text": "X", "category": "GENERAL"},
    ]


@pytest.mark.anyio
async def test_add_keywords_skips_existing(db, make_campaign, make_ad_group):
    campaign = await make_campaign()
    group = await make_ad_group(campaign.id, keywords=["emergency plumber"])
    repo = AdGroupRepository(db)

    added = await repo.add_keywords(group, ["Emergency Plumber", "burst pipe repair", "burst pipe repair"])
    assert added == ["burst pipe repair"]

    reloaded = await repo.find_by_id(group.id)
    assert [k["text"] for k in reloaded.keywords] == ["emergency plumber", "burst pipe repair"]


@pytest.mark.anyio
async def test_duplicate_ad_group_gets_new_keyword_ids(db, make_campaign, make_ad_group):
    campaign = await make_campaign()
    group = await make_ad_group(campaign.id, keywords=["drain unblocking"])
    copy = await AdGroupRepository(db).duplicate(group)

    assert copy.id != group.id
    assert copy.name == f"{group.name} (Copy)"
    assert copy.keywords[0]["text"] == "drain unblocking"
    assert copy.keywords[0]["id"] != group.keywords[0]["id"]


@pytest.mark.anyio
async def test_set_status_respects_scope(db, make_campaign, make_ad_group):
    first = await make_campaign(name="First")
    second = await make_campaign(name="Second")
    in_scope = await make_ad_group(first.id, name="In")
    out_of_scope = await make_ad_group(second.id, name="Out")

    updated = await AdGroupRepository(db).set_status(
        [in_scope.id, out_of_scope.id], "paused", campaign_id=first.id,
    )
    assert [g.id for g in updated] == [in_scope.id]
    assert out_of_scope.status == "active"


@pytest.mark.anyio
async def test_negative_exists_is_case_insensitive(db, make_campaign):
    campaign = await make_campaign()
    repo = NegativeKeywordRepository(db)
    negative = await repo.create(campaign.id, "  Free ")
    assert negative.level == "campaign"
    assert await repo.exists(campaign.id, "FREE") is True
    assert await repo.exists(campaign.id, "cheap") is False
