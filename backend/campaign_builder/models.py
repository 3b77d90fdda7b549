"""
Google Ads Campaign Builder — Database Models
ORM mapping over the tables created by ``campaign_builder/migrations/*.sql``.
Keywords, headlines and descriptions are embedded JSON lists, not child tables.
"""

import uuid
import enum
from datetime import date, datetime, timezone
from sqlalchemy import (
    String, Text, Float, Integer, Boolean, Date, DateTime,
    JSON, ForeignKey, Index,
)
from sqlalchemy.orm import Mapped, mapped_column
from campaign_builder.database import Base


def _utcnow() -> datetime:
    """Naive UTC now, matching the TEXT timestamps SQLite stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _new_id() -> str:
    return str(uuid.uuid4())


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class EntityStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    DRAFT = "draft"


class HeadlineCategory(str, enum.Enum):
    KEYWORD = "KEYWORD"
    VALUE = "VALUE"
    CTA = "CTA"
    GENERAL = "GENERAL"


class MatchType(str, enum.Enum):
    BROAD = "broad"
    PHRASE = "phrase"
    EXACT = "exact"


class NegativeLevel(str, enum.Enum):
    CAMPAIGN = "campaign"
    AD_GROUP = "ad_group"


class NegativeSource(str, enum.Enum):
    MANUAL = "manual"
    AUTOMATED = "automated"
    IMPORT = "import"
    RECOMMENDATION = "recommendation"


class SearchTermStatus(str, enum.Enum):
    ACTIVE = "active"
    ADDED_AS_NEGATIVE = "added_as_negative"
    ADDED_AS_POSITIVE = "added_as_positive"
    IGNORED = "ignored"


class RecommendationType(str, enum.Enum):
    MISSING_NEGATIVES = "missing_negatives"
    CONFLICTING_NEGATIVES = "conflicting_negatives"
    ORPHANED_AD_GROUP = "orphaned_ad_group"
    BUDGET_PACING = "budget_pacing"
    OVERLAPPING_KEYWORDS = "overlapping_keywords"
    LOW_QUALITY_SCORE = "low_quality_score"
    POOR_ASSET_PERFORMANCE = "poor_asset_performance"
    ADD_ASSET_VARIANT = "add_asset_variant"
    REMOVE_LOW_ASSET = "remove_low_asset"
    UNPINNED_ASSET = "unpinned_asset"
    SEARCH_TERM_NEGATIVE = "search_term_negative"
    SEARCH_TERM_POSITIVE = "search_term_positive"
    KEYWORD_EXPANSION = "keyword_expansion"
    BID_ADJUSTMENT = "bid_adjustment"
    BUDGET_INCREASE = "budget_increase"
    AD_COPY_REFRESH = "ad_copy_refresh"


class Priority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecommendationStatus(str, enum.Enum):
    PENDING = "pending"
    APPLIED = "applied"
    DISMISSED = "dismissed"
    SCHEDULED = "scheduled"


class TriggerType(str, enum.Enum):
    SCHEDULED = "scheduled"
    PERFORMANCE_THRESHOLD = "performance_threshold"
    BUDGET_THRESHOLD = "budget_threshold"
    IMPORT_COMPLETION = "import_completion"
    MANUAL = "manual"


class ActionType(str, enum.Enum):
    APPLY_RECOMMENDATIONS = "apply_recommendations"
    GENERATE_RECOMMENDATIONS = "generate_recommendations"
    PAUSE_LOW_PERFORMERS = "pause_low_performers"
    INCREASE_BUDGET = "increase_budget"
    DECREASE_BUDGET = "decrease_budget"
    ADD_NEGATIVES = "add_negatives"
    ADD_KEYWORDS = "add_keywords"
    REFRESH_ADS = "refresh_ads"
    ADJUST_BIDS = "adjust_bids"
    GENERATE_REPORT = "generate_report"
    SYNC_SHEETS_DATA = "sync_sheets_data"


class RunType(str, enum.Enum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"
    TRIGGERED = "triggered"


class RunStatus(str, enum.Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"


# ══════════════════════════════════════════════════════════════════════
#  CAMPAIGN STRUCTURE
# ══════════════════════════════════════════════════════════════════════

class Campaign(Base):
    """A Google Ads search campaign owned by this tool."""
    __tablename__ = "campaigns"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    budget: Mapped[float] = mapped_column(Float, default=0.0)
    status: Mapped[str] = mapped_column(String(20), default=EntityStatus.DRAFT.value)
    location: Mapped[str] = mapped_column(String(255), nullable=True, default="United States")
    start_date: Mapped[str] = mapped_column(String(32), nullable=True)
    end_date: Mapped[str] = mapped_column(String(32), nullable=True)
    final_url: Mapped[str] = mapped_column(Text, nullable=True, default="")
    path1: Mapped[str] = mapped_column(String(15), nullable=True, default="")
    path2: Mapped[str] = mapped_column(String(15), nullable=True, default="")
    global_descriptions: Mapped[list] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


class AdGroup(Base):
    """Ad group with its keyword list embedded as JSON ({id, text, max_cpc?})."""
    __tablename__ = "ad_groups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    campaign_id: Mapped[str] = mapped_column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    keywords: Mapped[list] = mapped_column(JSON, default=list)
    status: Mapped[str] = mapped_column(String(20), default=EntityStatus.DRAFT.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("idx_ad_groups_campaign_id", "campaign_id"),
    )


class Ad(Base):
    """Responsive Search Ad: headlines are {text, category}, descriptions are strings."""
    __tablename__ = "ads"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    ad_group_id: Mapped[str] = mapped_column(String(36), ForeignKey("ad_groups.id", ondelete="CASCADE"), nullable=False)
    headlines: Mapped[list] = mapped_column(JSON, default=list)
    descriptions: Mapped[list] = mapped_column(JSON, default=list)
    final_url: Mapped[str] = mapped_column(Text, default="")
    path1: Mapped[str] = mapped_column(String(15), nullable=True, default="")
    path2: Mapped[str] = mapped_column(String(15), nullable=True, default="")
    status: Mapped[str] = mapped_column(String(20), default=EntityStatus.DRAFT.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("idx_ads_ad_group_id", "ad_group_id"),
    )


class NegativeKeyword(Base):
    __tablename__ = "negative_keywords"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    campaign_id: Mapped[str] = mapped_column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=True)
    ad_group_id: Mapped[str] = mapped_column(String(36), ForeignKey("ad_groups.id", ondelete="CASCADE"), nullable=True)
    keyword_text: Mapped[str] = mapped_column(String(255), nullable=False)
    match_type: Mapped[str] = mapped_column(String(10), default=MatchType.PHRASE.value)
    level: Mapped[str] = mapped_column(String(20), default=NegativeLevel.CAMPAIGN.value)
    source: Mapped[str] = mapped_column(String(20), default=NegativeSource.MANUAL.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


# ══════════════════════════════════════════════════════════════════════
#  PERFORMANCE INPUTS
# ══════════════════════════════════════════════════════════════════════

class SearchTerm(Base):
    """Search query report row for one campaign/ad group and date range."""
    __tablename__ = "search_terms"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    campaign_id: Mapped[str] = mapped_column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False)
    ad_group_id: Mapped[str] = mapped_column(String(36), ForeignKey("ad_groups.id", ondelete="CASCADE"), nullable=False)
    keyword_id: Mapped[str] = mapped_column(String(36), nullable=True)
    search_term: Mapped[str] = mapped_column(Text, nullable=False)
    match_type: Mapped[str] = mapped_column(String(10), default=MatchType.BROAD.value)
    impressions: Mapped[int] = mapped_column(Integer, default=0)
    clicks: Mapped[int] = mapped_column(Integer, default=0)
    cost: Mapped[float] = mapped_column(Float, default=0.0)
    conversions: Mapped[float] = mapped_column(Float, default=0.0)
    ctr: Mapped[float] = mapped_column(Float, default=0.0)
    cpc: Mapped[float] = mapped_column(Float, default=0.0)
    conversion_rate: Mapped[float] = mapped_column(Float, default=0.0)
    is_negative_candidate: Mapped[bool] = mapped_column(Boolean, default=False)
    is_positive_candidate: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(String(30), default=SearchTermStatus.ACTIVE.value)
    date_range_start: Mapped[date] = mapped_column(Date, nullable=True)
    date_range_end: Mapped[date] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (
        Index("idx_search_terms_campaign_id", "campaign_id"),
        Index("idx_search_terms_ad_group_id", "ad_group_id"),
    )


class PerformanceData(Base):
    """Time-bucketed metrics for a campaign, ad group, ad, keyword or asset."""
    __tablename__ = "performance_data"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    date_range_start: Mapped[date] = mapped_column(Date, nullable=False)
    date_range_end: Mapped[date] = mapped_column(Date, nullable=False)
    impressions: Mapped[int] = mapped_column(Integer, default=0)
    clicks: Mapped[int] = mapped_column(Integer, default=0)
    cost: Mapped[float] = mapped_column(Float, default=0.0)
    conversions: Mapped[float] = mapped_column(Float, default=0.0)
    ctr: Mapped[float] = mapped_column(Float, default=0.0)
    cpc: Mapped[float] = mapped_column(Float, default=0.0)
    cpa: Mapped[float] = mapped_column(Float, default=0.0)
    conversion_rate: Mapped[float] = mapped_column(Float, default=0.0)
    impression_share: Mapped[float] = mapped_column(Float, default=0.0)
    quality_score: Mapped[float] = mapped_column(Float, default=0.0)
    search_lost_is_rank: Mapped[float] = mapped_column(Float, default=0.0)
    search_lost_is_budget: Mapped[float] = mapped_column(Float, default=0.0)
    metrics: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (
        Index("idx_performance_entity", "entity_type", "entity_id"),
    )


class AssetPerformance(Base):
    """Google's performance label for one RSA headline or description."""
    __tablename__ = "asset_performance"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    ad_id: Mapped[str] = mapped_column(String(36), ForeignKey("ads.id", ondelete="CASCADE"), nullable=False)
    asset_type: Mapped[str] = mapped_column(String(20), nullable=False)
    asset_text: Mapped[str] = mapped_column(Text, nullable=False)
    asset_position: Mapped[int] = mapped_column(Integer, nullable=True)
    performance_label: Mapped[str] = mapped_column(String(20), nullable=True)
    impressions: Mapped[int] = mapped_column(Integer, default=0)
    combination_impressions: Mapped[int] = mapped_column(Integer, default=0)
    date_range_start: Mapped[date] = mapped_column(Date, nullable=True)
    date_range_end: Mapped[date] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


# ══════════════════════════════════════════════════════════════════════
#  RECOMMENDATIONS & AUTOMATION
# ══════════════════════════════════════════════════════════════════════

class Recommendation(Base):
    """Suggestion produced by the recommendation engine; action_required is opaque to the DB."""
    __tablename__ = "recommendations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    campaign_id: Mapped[str] = mapped_column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=True)
    ad_group_id: Mapped[str] = mapped_column(String(36), ForeignKey("ad_groups.id", ondelete="CASCADE"), nullable=True)
    ad_id: Mapped[str] = mapped_column(String(36), ForeignKey("ads.id", ondelete="CASCADE"), nullable=True)
    recommendation_type: Mapped[str] = mapped_column(String(40), nullable=False)
    priority: Mapped[str] = mapped_column(String(10), default=Priority.MEDIUM.value)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    impact_estimate: Mapped[str] = mapped_column(Text, nullable=True)
    action_required: Mapped[dict] = mapped_column(JSON, default=dict)
    auto_apply_eligible: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(String(20), default=RecommendationStatus.PENDING.value)
    applied_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("idx_recommendations_campaign_id", "campaign_id"),
        Index("idx_recommendations_status", "status"),
    )


class AutomationRule(Base):
    __tablename__ = "automation_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    trigger_type: Mapped[str] = mapped_column(String(40), nullable=False)
    trigger_config: Mapped[dict] = mapped_column(JSON, default=dict)
    action_type: Mapped[str] = mapped_column(String(40), nullable=False)
    action_config: Mapped[dict] = mapped_column(JSON, default=dict)
    filters: Mapped[dict] = mapped_column(JSON, default=dict)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    last_run_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    next_run_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    run_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


class AutomationHistory(Base):
    """Append-only log row per automation run."""
    __tablename__ = "automation_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    rule_id: Mapped[str] = mapped_column(String(36), ForeignKey("automation_rules.id", ondelete="SET NULL"), nullable=True)
    run_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=RunStatus.STARTED.value)
    entities_affected: Mapped[int] = mapped_column(Integer, default=0)
    changes_made: Mapped[list] = mapped_column(JSON, default=list)
    errors: Mapped[list] = mapped_column(JSON, default=list)
    execution_time_ms: Mapped[int] = mapped_column(Integer, nullable=True)
    run_metadata: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    completed_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_automation_history_rule_id", "rule_id"),
    )


# ══════════════════════════════════════════════════════════════════════
#  IMPORTS, SNAPSHOTS & INTEGRATIONS
# ══════════════════════════════════════════════════════════════════════

class ImportRecord(Base):
    """Audit row for one uploaded Editor CSV."""
    __tablename__ = "imports"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    filename: Mapped[str] = mapped_column(String(500), nullable=False)
    file_type: Mapped[str] = mapped_column(String(10), default="csv")
    file_size: Mapped[int] = mapped_column(Integer, default=0)
    import_type: Mapped[str] = mapped_column(String(40), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    entities_imported: Mapped[int] = mapped_column(Integer, default=0)
    errors: Mapped[list] = mapped_column(JSON, default=list)
    raw_data: Mapped[str] = mapped_column(Text, nullable=True)
    import_metadata: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    completed_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)


class Snapshot(Base):
    __tablename__ = "snapshots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    campaign_id: Mapped[str] = mapped_column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False)
    snapshot_type: Mapped[str] = mapped_column(String(20), nullable=False)
    snapshot_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    created_by: Mapped[str] = mapped_column(String(100), default="system")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class SheetsConfig(Base):
    """Service-account settings for the Google Sheets sync (private_key encrypted at rest)."""
    __tablename__ = "sheets_config"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    spreadsheet_id: Mapped[str] = mapped_column(String(255), nullable=False)
    client_email: Mapped[str] = mapped_column(String(255), nullable=False)
    private_key: Mapped[str] = mapped_column(Text, nullable=False)
    performance_sheet: Mapped[str] = mapped_column(String(100), default="Performance")
    search_terms_sheet: Mapped[str] = mapped_column(String(100), default="SearchTerms")
    asset_performance_sheet: Mapped[str] = mapped_column(String(100), default="AssetPerformance")
    last_synced_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)
