"""
Recommendation Engine — threshold rules over stored campaign structure and
performance rows.

Four analyzers run per campaign in a fixed order:
  1. Structure hygiene   (orphaned ad groups, incomplete RSAs, overlapping keywords, missing negatives)
  2. Asset performance   (Google "Low"/"Best" labels, over-pinning)
  3. Query mining        (search terms to negate or promote to keywords)
  4. Budget pacing       (underspend, budget-limited winners, CTR decline)

Generation is append-only: running it twice creates a second set of pending rows.
"""

import logging
import math
import uuid
from collections import defaultdict
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_builder.models import (
    Ad, AdGroup, AssetPerformance, Campaign, EntityStatus, MatchType, NegativeSource,
    PerformanceData, Priority, Recommendation, RecommendationStatus, RecommendationType,
    SearchTerm, SearchTermStatus,
)
from campaign_builder.repositories import (
    AdGroupRepository, AdRepository, CampaignRepository, NegativeKeywordRepository,
    RecommendationRepository,
)
from campaign_builder.repositories.ad_group_repository import keyword_key
from campaign_builder.utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_MIN_IMPRESSIONS = 100
QUERY_MINING_MIN_IMPRESSIONS = 50

SUGGESTED_NEGATIVES = [
    "free", "cheap", "download", "torrent", "crack", "pirate", "tutorial", "how to", "diy",
]


class GenerationOptions(BaseModel):
    campaign_ids: Optional[list[str]] = None
    include_structure_hygiene: bool = True
    include_asset_optimization: bool = True
    include_query_mining: bool = True
    include_budget_optimization: bool = True
    # Unset: assets use 100 impressions, query mining uses 50.
    min_impressions_threshold: Optional[int] = None


class RecommendationEngine:
    """Generates, lists and applies recommendations against one session."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.campaigns = CampaignRepository(db)
        self.ad_groups = AdGroupRepository(db)
        self.ads = AdRepository(db)
        self.negatives = NegativeKeywordRepository(db)
        self.recommendations = RecommendationRepository(db)

    # ── Generation ────────────────────────────────────────────────────

    async def generate_recommendations(self, options: Optional[GenerationOptions] = None) -> list[Recommendation]:
        options = options or GenerationOptions()

        if options.campaign_ids:
            campaigns = await self.campaigns.find_by_ids(options.campaign_ids)
        else:
            campaigns = await self.campaigns.find_by_status(EntityStatus.ACTIVE.value)

        generated: list[Recommendation] = []
        for campaign in campaigns:
            if options.include_structure_hygiene:
                generated.extend(await self._analyze_structure_hygiene(campaign))
            if options.include_asset_optimization:
                generated.extend(await self._analyze_asset_performance(campaign, options))
            if options.include_query_mining:
                generated.extend(await self._analyze_search_terms(campaign, options))
            if options.include_budget_optimization:
                generated.extend(await self._analyze_budget_pacing(campaign))

        # One flush for the whole batch; the caller's transaction makes it all-or-nothing.
        await self.recommendations.add_all(generated)
        logger.info(f"Generated {len(generated)} recommendations across {len(campaigns)} campaign(s)")
        return generated

    @staticmethod
    def _make(
        campaign: Campaign,
        rec_type: RecommendationType,
        priority: Priority,
        title: str,
        description: str,
        impact: str,
        action: dict,
        auto_apply: bool = False,
        ad_group_id: Optional[str] = None,
        ad_id: Optional[str] = None,
    ) -> Recommendation:
        return Recommendation(
            id=str(uuid.uuid4()),
            campaign_id=campaign.id,
            ad_group_id=ad_group_id,
            ad_id=ad_id,
            recommendation_type=rec_type.value,
            priority=priority.value,
            title=title,
            description=description,
            impact_estimate=impact,
            action_required=action,
            auto_apply_eligible=auto_apply,
            status=RecommendationStatus.PENDING.value,
        )

    async def _analyze_structure_hygiene(self, campaign: Campaign) -> list[Recommendation]:
        recs = []
        ad_groups = await self.ad_groups.find_by_campaign_id(campaign.id)
        keyword_locations: dict[str, list[AdGroup]] = defaultdict(list)

        for ad_group in ad_groups:
            keywords = ad_group.keywords or []
            ads = await self.ads.find_by_ad_group_id(ad_group.id)

            if not keywords or not ads:
                missing = "no keywords" if not keywords else "no ads"
                recs.append(self._make(
                    campaign, RecommendationType.ORPHANED_AD_GROUP, Priority.HIGH,
                    f"Orphaned Ad Group: {ad_group.name}",
                    f"This ad group has {missing} and cannot serve traffic.",
                    "Will not receive any traffic",
                    {
                        "action": "add_keywords_or_ads",
                        "ad_group_id": ad_group.id,
                        "missing_keywords": not keywords,
                        "missing_ads": not ads,
                    },
                    ad_group_id=ad_group.id,
                ))

            for ad in ads:
                headlines = ad.headlines or []
                descriptions = ad.descriptions or []
                if len(headlines) < 3 or len(descriptions) < 2:
                    recs.append(self._make(
                        campaign, RecommendationType.AD_COPY_REFRESH, Priority.MEDIUM,
                        f"Incomplete RSA: Ad in {ad_group.name}",
                        f"This ad has only {len(headlines)} headlines and {len(descriptions)} descriptions. "
                        "Responsive Search Ads need at least 3 headlines and 2 descriptions; 8-10 headlines work best.",
                        "Low ad strength limits performance",
                        {
                            "action": "add_headlines_descriptions",
                            "ad_id": ad.id,
                            "current_headlines": len(headlines),
                            "current_descriptions": len(descriptions),
                            "recommended_headlines": 10,
                            "recommended_descriptions": 4,
                        },
                        ad_group_id=ad_group.id,
                        ad_id=ad.id,
                    ))

            seen_in_group = set()
            for kw in keywords:
                key = keyword_key(kw.get("text", ""))
                if key and key not in seen_in_group:
                    seen_in_group.add(key)
                    keyword_locations[key].append(ad_group)

        for key, groups in keyword_locations.items():
            if len(groups) < 2:
                continue
            names = ", ".join(g.name for g in groups)
            recs.append(self._make(
                campaign, RecommendationType.OVERLAPPING_KEYWORDS, Priority.MEDIUM,
                f'Overlapping keyword: "{key}"',
                f"This keyword appears in {len(groups)} ad groups: {names}. Ad groups will compete in the same auctions.",
                "May reduce quality score and increase CPC",
                {
                    "action": "remove_duplicate_keywords",
                    "keyword": key,
                    "ad_group_ids": [g.id for g in groups],
                },
            ))

        if await self.negatives.count_for_campaign(campaign.id) == 0:
            recs.append(self._make(
                campaign, RecommendationType.MISSING_NEGATIVES, Priority.MEDIUM,
                "No negative keywords found",
                "This campaign has no negative keywords, so it may be paying for irrelevant searches.",
                "Could save 10-20% of budget",
                {
                    "action": "add_negative_keywords",
                    "campaign_id": campaign.id,
                    "suggestions": list(SUGGESTED_NEGATIVES),
                },
            ))
        return recs

    async def _analyze_asset_performance(self, campaign: Campaign, options: GenerationOptions) -> list[Recommendation]:
        threshold = options.min_impressions_threshold
        if threshold is None:
            threshold = DEFAULT_MIN_IMPRESSIONS

        result = await self.db.execute(
            select(AssetPerformance, Ad.ad_group_id)
            .join(Ad, AssetPerformance.ad_id == Ad.id)
            .join(AdGroup, Ad.ad_group_id == AdGroup.id)
            .where(AdGroup.campaign_id == campaign.id, AssetPerformance.impressions >= threshold)
        )
        by_ad: dict[str, list[AssetPerformance]] = defaultdict(list)
        ad_group_of: dict[str, str] = {}
        for asset, ad_group_id in result.all():
            by_ad[asset.ad_id].append(asset)
            ad_group_of[asset.ad_id] = ad_group_id

        recs = []
        for ad_id, assets in by_ad.items():
            ad_group_id = ad_group_of[ad_id]

            low = [a for a in assets if a.performance_label == "Low"]
            if low:
                recs.append(self._make(
                    campaign, RecommendationType.REMOVE_LOW_ASSET, Priority.HIGH,
                    f"Remove {len(low)} low-performing {low[0].asset_type}(s)",
                    f'Google has labeled {len(low)} {low[0].asset_type}(s) as "Low" after {low[0].impressions}+ impressions.',
                    "Could improve CTR by 5-15%",
                    {
                        "action": "remove_assets",
                        "ad_id": ad_id,
                        "assets": [
                            {"type": a.asset_type, "text": a.asset_text, "label": a.performance_label}
                            for a in low
                        ],
                    },
                    auto_apply=True,
                    ad_group_id=ad_group_id,
                    ad_id=ad_id,
                ))

            pinned = [a for a in assets if a.asset_position is not None]
            if len(pinned) > 2:
                recs.append(self._make(
                    campaign, RecommendationType.UNPINNED_ASSET, Priority.MEDIUM,
                    "Too many pinned assets",
                    f"This ad has {len(pinned)} pinned assets. Over-pinning limits which combinations Google can test.",
                    "May reduce impressions and performance",
                    {
                        "action": "unpin_assets",
                        "ad_id": ad_id,
                        "pinned_assets": [
                            {"type": a.asset_type, "text": a.asset_text, "position": a.asset_position}
                            for a in pinned
                        ],
                    },
                    ad_group_id=ad_group_id,
                    ad_id=ad_id,
                ))

            best = [a for a in assets if a.performance_label == "Best"][:3]
            if best:
                texts = '", "'.join(a.asset_text for a in best)
                recs.append(self._make(
                    campaign, RecommendationType.ADD_ASSET_VARIANT, Priority.LOW,
                    f"Create variants of top-performing {best[0].asset_type}s",
                    f'Your best-performing {best[0].asset_type}s are: "{texts}". Similar variants are likely to perform well.',
                    "Could improve CTR by 3-8%",
                    {
                        "action": "generate_asset_variants",
                        "ad_id": ad_id,
                        "best_assets": [{"type": a.asset_type, "text": a.asset_text} for a in best],
                    },
                    auto_apply=True,
                    ad_group_id=ad_group_id,
                    ad_id=ad_id,
                ))
        return recs

    async def _analyze_search_terms(self, campaign: Campaign, options: GenerationOptions) -> list[Recommendation]:
        threshold = options.min_impressions_threshold
        if threshold is None:
            threshold = QUERY_MINING_MIN_IMPRESSIONS

        result = await self.db.execute(
            select(SearchTerm).where(
                SearchTerm.campaign_id == campaign.id,
                SearchTerm.impressions >= threshold,
                SearchTerm.status == SearchTermStatus.ACTIVE.value,
            )
        )
        terms = list(result.scalars().all())

        keyword_cache: dict[str, set[str]] = {}
        recs = []
        for term in terms:
            impressions = term.impressions or 0
            clicks = term.clicks or 0
            conversions = term.conversions or 0
            cost = term.cost or 0.0
            ctr = clicks / impressions if impressions > 0 else 0.0
            conv_rate = conversions / clicks if clicks > 0 else 0.0
            stats = {
                "impressions": impressions,
                "clicks": clicks,
                "conversions": conversions,
                "cost": cost,
                "ctr": ctr,
                "conversion_rate": conv_rate,
            }

            if impressions > 100 and ctr < 0.01:
                recs.append(self._make(
                    campaign, RecommendationType.SEARCH_TERM_NEGATIVE, Priority.HIGH,
                    f'Add negative keyword: "{term.search_term}"',
                    f"This search term has {impressions} impressions but only {clicks} clicks "
                    f"({ctr * 100:.2f}% CTR). Excluding it will save budget.",
                    f"Could save ${cost:.2f}/month",
                    self._negative_action(campaign, term, stats),
                    auto_apply=True,
                    ad_group_id=term.ad_group_id,
                ))

            if impressions > 50 and ctr > 0.05 and conv_rate > 0.02:
                if term.ad_group_id not in keyword_cache:
                    ad_group = await self.ad_groups.find_by_id(term.ad_group_id)
                    keyword_cache[term.ad_group_id] = {
                        keyword_key(k.get("text", "")) for k in (ad_group.keywords if ad_group else []) or []
                    }
                if keyword_key(term.search_term) not in keyword_cache[term.ad_group_id]:
                    recs.append(self._make(
                        campaign, RecommendationType.SEARCH_TERM_POSITIVE, Priority.HIGH,
                        f'Add keyword: "{term.search_term}"',
                        f"This search term performs well: {ctr * 100:.2f}% CTR and "
                        f"{conv_rate * 100:.2f}% conversion rate. Adding it as a keyword gives direct bid control.",
                        "Could increase conversions by 15-30%",
                        {
                            "action": "add_keyword",
                            "search_term": term.search_term,
                            "campaign_id": campaign.id,
                            "ad_group_id": term.ad_group_id,
                            "match_type": MatchType.PHRASE.value,
                            "stats": stats,
                        },
                        auto_apply=True,
                        ad_group_id=term.ad_group_id,
                    ))

            if cost > 50 and (conv_rate < 0.01 or conversions == 0):
                recs.append(self._make(
                    campaign, RecommendationType.SEARCH_TERM_NEGATIVE, Priority.CRITICAL,
                    f'High-cost low-performer: "{term.search_term}"',
                    f"This search term has spent ${cost:.2f} with {conversions:g} conversions.",
                    f"Could save ${cost * 12:.2f}/year",
                    self._negative_action(campaign, term, stats),
                    auto_apply=True,
                    ad_group_id=term.ad_group_id,
                ))
        return recs

    @staticmethod
    def _negative_action(campaign: Campaign, term: SearchTerm, stats: dict) -> dict:
        return {
            "action": "add_negative_keyword",
            "search_term": term.search_term,
            "campaign_id": campaign.id,
            "ad_group_id": term.ad_group_id,
            "match_type": MatchType.PHRASE.value,
            "stats": stats,
        }

    async def _analyze_budget_pacing(self, campaign: Campaign) -> list[Recommendation]:
        result = await self.db.execute(
            select(PerformanceData)
            .where(PerformanceData.entity_type == "campaign", PerformanceData.entity_id == campaign.id)
            .order_by(PerformanceData.date_range_start.desc())
            .limit(14)
        )
        rows = list(result.scalars().all())
        if not rows:
            return []

        recs = []
        budget = campaign.budget or 0.0
        avg_spend = sum(r.cost or 0.0 for r in rows) / len(rows)
        latest = rows[0]
        lost_is_budget = latest.search_lost_is_budget or 0.0

        if budget > 0 and avg_spend < budget * 0.6 and lost_is_budget < 0.05:
            recs.append(self._make(
                campaign, RecommendationType.BUDGET_PACING, Priority.LOW,
                "Underspending budget",
                f"This campaign is only spending {avg_spend / budget * 100:.0f}% of its daily budget "
                f"(${avg_spend:.2f} / ${budget:.2f}).",
                "Reallocate budget to better-performing campaigns",
                {
                    "action": "adjust_budget",
                    "campaign_id": campaign.id,
                    "current_budget": budget,
                    "recommended_budget": math.ceil(avg_spend * 1.1),
                    "reason": "underspending",
                },
            ))

        conv_rate = latest.conversion_rate or 0.0
        if lost_is_budget > 0.15 and conv_rate > 0.02:
            recs.append(self._make(
                campaign, RecommendationType.BUDGET_INCREASE, Priority.HIGH,
                "Limited by budget",
                f"This campaign is losing {lost_is_budget * 100:.0f}% of impression share to budget "
                f"while converting at {conv_rate * 100:.2f}%.",
                f"Could increase conversions by {lost_is_budget * 100:.0f}%",
                {
                    "action": "increase_budget",
                    "campaign_id": campaign.id,
                    "current_budget": budget,
                    "recommended_budget": math.ceil(budget * 1.25),
                    "reason": "limited_by_budget",
                    "supporting_data": {
                        "lost_impression_share": lost_is_budget,
                        "conversion_rate": conv_rate,
                        "cpa": latest.cpa or 0.0,
                    },
                },
            ))

        if len(rows) >= 7:
            recent = rows[:3]
            older = rows[3:7]
            recent_ctr = sum(r.ctr or 0.0 for r in recent) / len(recent)
            older_ctr = sum(r.ctr or 0.0 for r in older) / len(older)
            if recent_ctr < older_ctr * 0.8:
                decline = (older_ctr - recent_ctr) / older_ctr * 100 if older_ctr else 0.0
                recs.append(self._make(
                    campaign, RecommendationType.AD_COPY_REFRESH, Priority.MEDIUM,
                    "Declining CTR trend",
                    f"CTR has declined by {decline:.0f}% compared with the previous period. Consider refreshing ad copy.",
                    "Could restore CTR to previous levels",
                    {
                        "action": "refresh_ads",
                        "campaign_id": campaign.id,
                        "recent_ctr": recent_ctr,
                        "previous_ctr": older_ctr,
                    },
                ))
        return recs

    # ── Application ───────────────────────────────────────────────────

    async def apply_recommendation(self, rec_id: str) -> dict:
        """
        Apply one auto-apply-eligible recommendation.
        The domain change and the status flip share a SAVEPOINT: both land or neither does.
        Never raises; failures come back as {"success": False, "message": ...}.
        """
        rec = await self.recommendations.find_by_id(rec_id)
        if rec is None:
            return {"success": False, "message": "Recommendation not found"}
        if not rec.auto_apply_eligible:
            return {"success": False, "message": "This recommendation cannot be auto-applied"}
        if rec.status == RecommendationStatus.APPLIED.value:
            return {"success": False, "message": "Recommendation already applied"}

        action = rec.action_required or {}
        action_name = action.get("action")
        try:
            async with self.db.begin_nested():
                if action_name == "add_negative_keyword":
                    await self._apply_negative(rec, action)
                elif action_name == "add_keyword":
                    await self._apply_keyword(action)
                elif action_name in ("remove_assets", "generate_asset_variants"):
                    # Asset text lives inside the ad JSON; nothing to mutate here yet.
                    pass
                else:
                    raise ValueError(f"Unknown action type: {action_name}")

                rec.status = RecommendationStatus.APPLIED.value
                rec.applied_at = utcnow()
                await self.db.flush()
        except Exception as exc:
            logger.warning(f"Applying recommendation {rec_id} failed: {exc}")
            return {"success": False, "message": f"Error applying recommendation: {exc}"}

        logger.info(f"Applied recommendation {rec_id} ({rec.recommendation_type})")
        return {"success": True, "message": "Recommendation applied successfully"}

    async def _apply_negative(self, rec: Recommendation, action: dict) -> None:
        campaign_id = action.get("campaign_id") or rec.campaign_id
        ad_group_id = action.get("ad_group_id")
        search_term = action["search_term"]
        if await self.negatives.exists(campaign_id, search_term, ad_group_id):
            logger.info(f"Negative \"{search_term}\" already present, marking recommendation {rec.id} applied")
        else:
            await self.negatives.create(
                campaign_id=campaign_id,
                keyword_text=search_term,
                match_type=action.get("match_type") or MatchType.PHRASE.value,
                ad_group_id=ad_group_id,
                source=NegativeSource.AUTOMATED.value,
            )
        await self._mark_search_term(search_term, ad_group_id, SearchTermStatus.ADDED_AS_NEGATIVE)

    async def _apply_keyword(self, action: dict) -> None:
        ad_group_id = action["ad_group_id"]
        ad_group = await self.ad_groups.find_by_id(ad_group_id)
        if ad_group is None:
            raise ValueError(f"Ad group {ad_group_id} no longer exists")
        await self.ad_groups.add_keywords(ad_group, [action["search_term"]])
        await self._mark_search_term(action["search_term"], ad_group_id, SearchTermStatus.ADDED_AS_POSITIVE)

    async def _mark_search_term(self, text: str, ad_group_id: Optional[str], status: SearchTermStatus) -> None:
        stmt = update(SearchTerm).where(SearchTerm.search_term == text).values(status=status.value)
        if ad_group_id:
            stmt = stmt.where(SearchTerm.ad_group_id == ad_group_id)
        await self.db.execute(stmt.execution_options(synchronize_session="fetch"))

    # ── Queries ───────────────────────────────────────────────────────

    async def get_recommendations_for_campaign(self, campaign_id: str, status: Optional[str] = None) -> list[Recommendation]:
        return await self.recommendations.find_for_campaign(campaign_id, status)

    async def apply_bulk(self, rec_ids: list[str]) -> dict:
        results = []
        for rec_id in rec_ids:
            outcome = await self.apply_recommendation(rec_id)
            results.append({"id": rec_id, **outcome})
        applied = sum(1 for r in results if r["success"])
        return {"applied": applied, "failed": len(results) - applied, "results": results}

    async def list_recommendations(
        self,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        campaign_id: Optional[str] = None,
        recommendation_type: Optional[str] = None,
        limit: int = 100,
    ) -> list[Recommendation]:
        return await self.recommendations.find_filtered(
            status=status,
            priority=priority,
            campaign_id=campaign_id,
            recommendation_type=recommendation_type,
            limit=limit,
        )

    async def stats(self) -> dict:
        return await self.recommendations.stats()

    async def update_status(self, rec_id: str, status: str) -> Optional[Recommendation]:
        return await self.recommendations.update_status(rec_id, status)

    async def delete(self, rec_id: str) -> bool:
        return await self.recommendations.delete(rec_id)
