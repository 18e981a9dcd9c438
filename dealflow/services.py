"""Serialization helpers shared by the API and scripts."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from dealflow.models import Opportunity, OpportunityEvent
from dealflow.store import DEAL_FIELDS
from dealflow.utils import json_parse

IDENTITY_FIELDS = ("id", "direction", "source_kind", "source_id", "target_kind", "target_id")

WORKFLOW_FIELDS = ("status", "reason", "next_action", "owner_user_id")


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def opportunity_summary(opp: Opportunity) -> dict[str, Any]:
    data: dict[str, Any] = {f: getattr(opp, f) for f in IDENTITY_FIELDS + WORKFLOW_FIELDS + DEAL_FIELDS}
    data["score"] = opp.score
    data["score_breakdown"] = json_parse(opp.score_breakdown_json, {})
    data["term_deadline"] = _iso(opp.term_deadline)
    data["created_at"] = _iso(opp.created_at)
    data["updated_at"] = _iso(opp.updated_at)
    return data


def event_summary(event: OpportunityEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "opportunity_id": event.opportunity_id,
        "occurred_at": _iso(event.occurred_at),
        "type": event.type,
        "payload": json_parse(event.payload_json, {}),
    }
