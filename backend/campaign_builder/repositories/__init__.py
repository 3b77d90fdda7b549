"""
Repositories — thin per-entity data access over an injected AsyncSession.
"""

from campaign_builder.repositories.campaign_repository import CampaignRepository
from campaign_builder.repositories.ad_group_repository import AdGroupRepository
from campaign_builder.repositories.ad_repository import AdRepository
from campaign_builder.repositories.negative_keyword_repository import NegativeKeywordRepository
from campaign_builder.repositories.recommendation_repository import RecommendationRepository
from campaign_builder.repositories.automation_repository import AutomationRepository

__all__ = [
    "CampaignRepository",
    "AdGroupRepository",
    "AdRepository",
    "NegativeKeywordRepository",
    "RecommendationRepository",
    "AutomationRepository",
]
