"""
ORM row → JSON-safe dict conversions shared by routers and snapshots.
"""

from campaign_builder.models import (
    Ad, AdGroup, AutomationHistory, AutomationRule, Campaign, ImportRecord,
    NegativeKeyword, Recommendation,
)
from campaign_builder.utils import isoformat


def serialize_campaign(c: Campaign) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "budget": c.budget,
        "status": c.status,
        "location": c.location,
        "start_date": c.start_date,
        "end_date": c.end_date,
        "final_url": c.final_url,
        "path1": c.path1,
        "path2": c.path2,
        "global_descriptions": c.global_descriptions or [],
        "created_at": isoformat(c.created_at),
        "updated_at": isoformat(c.updated_at),
    }


def serialize_ad_group(g: AdGroup) -> dict:
    return {
        "id": g.id,
        "campaign_id": g.campaign_id,
        "name": g.name,
        "keywords": g.keywords or [],
        "status": g.status,
        "created_at": isoformat(g.created_at),
        "updated_at": isoformat(g.updated_at),
    }


def serialize_ad(a: Ad) -> dict:
    return {
        "id": a.id,
        "ad_group_id": a.ad_group_id,
        "headlines": a.headlines or [],
        "descriptions": a.descriptions or [],
        "final_url": a.final_url,
        "path1": a.path1,
        "path2": a.path2,
        "status": a.status,
        "created_at": isoformat(a.created_at),
        "updated_at": isoformat(a.updated_at),
    }


def serialize_negative_keyword(n: NegativeKeyword) -> dict:
    return {
        "id": n.id,
        "campaign_id": n.campaign_id,
        "ad_group_id": n.ad_group_id,
        "keyword_text": n.keyword_text,
        "match_type": n.match_type,
        "level": n.level,
        "source": n.source,
        "created_at": isoformat(n.created_at),
    }


def serialize_recommendation(r: Recommendation) -> dict:
    return {
        "id": r.id,
        "campaign_id": r.campaign_id,
        "ad_group_id": r.ad_group_id,
        "ad_id": r.ad_id,
        "recommendation_type": r.recommendation_type,
        "priority": r.priority,
        "title": r.title,
        "description": r.description,
        "impact_estimate": r.impact_estimate,
        "action_required": r.action_required or {},
        "auto_apply_eligible": bool(r.auto_apply_eligible),
        "status": r.status,
        "applied_at": isoformat(r.applied_at),
        "created_at": isoformat(r.created_at),
        "updated_at": isoformat(r.updated_at),
    }


def serialize_rule(r: AutomationRule) -> dict:
    return {
        "id": r.id,
        "name": r.name,
        "description": r.description,
        "trigger_type": r.trigger_type,
        "trigger_config": r.trigger_config or {},
        "action_type": r.action_type,
        "action_config": r.action_config or {},
        "filters": r.filters or {},
        "enabled": bool(r.enabled),
        "last_run_at": isoformat(r.last_run_at),
        "next_run_at": isoformat(r.next_run_at),
        "run_count": r.run_count or 0,
        "created_at": isoformat(r.created_at),
        "updated_at": isoformat(r.updated_at),
    }


def serialize_history(h: AutomationHistory) -> dict:
    return {
        "id": h.id,
        "rule_id": h.rule_id,
        "run_type": h.run_type,
        "status": h.status,
        "entities_affected": h.entities_affected or 0,
        "changes_made": h.changes_made or [],
        "errors": h.errors or [],
        "execution_time_ms": h.execution_time_ms,
        "metadata": h.run_metadata or {},
        "started_at": isoformat(h.started_at),
        "completed_at": isoformat(h.completed_at),
    }


def serialize_import(i: ImportRecord, include_raw: bool = False) -> dict:
    data = {
        "id": i.id,
        "filename": i.filename,
        "file_type": i.file_type,
        "file_size": i.file_size,
        "import_type": i.import_type,
        "status": i.status,
        "entities_imported": i.entities_imported or 0,
        "errors": i.errors or [],
        "metadata": i.import_metadata or {},
        "created_at": isoformat(i.created_at),
        "completed_at": isoformat(i.completed_at),
    }
    if include_raw:
        data["raw_data"] = i.raw_data
    return data
