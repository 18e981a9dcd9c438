from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Generator

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from dealflow import services
from dealflow.db import get_session, init_db, session_generator
from dealflow.finance import enrich_deal_fields
from dealflow.matching import GENERATORS, iter_regenerate, load_anchor_ids
from dealflow.models import EntityKind, OpportunityStatus
from dealflow.schemas import (
    DealFieldsUpdate,
    EventCreate,
    EventOut,
    GenerateRequest,
    GenerateResult,
    OpportunityListResponse,
    OpportunityOut,
    RegenerateRequest,
    StatusUpdate,
)
from dealflow.store import OpportunityStore

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Dealflow",
    version="0.1.0",
    description=(
        "Opportunity matching API for an incubator pipeline. "
        "Scores fundraisers against capital providers and partners and tracks "
        "the resulting opportunities through their status lifecycle."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Matching", "description": "Generate and regenerate scored opportunities."},
        {"name": "Opportunities", "description": "Browse opportunities and move them through the pipeline."},
        {"name": "Events", "description": "Append-only audit log per opportunity."},
    ],
)


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    yield from session_generator()


def _get_or_404(store: OpportunityStore, opportunity_id: int):
    opp = store.get(opportunity_id)
    if opp is None:
        raise HTTPException(404, "Opportunity not found")
    return opp


# ---------------------------------------------------------------------------
# Routes: Matching (batch before parameterized)
# ---------------------------------------------------------------------------


def _regenerate_stream(kind: EntityKind, top_k: int, min_score: float, delay: float = 0.0):
    """SSE progress stream; every anchor runs in its own transaction."""
    async def stream():
        ids = load_anchor_ids(get_session, kind)
        stats = {"anchors": len(ids), "created": 0, "failed": 0}

        outcomes = iter_regenerate(get_session, kind, ids, top_k, min_score)
        for idx, (anchor_id, created) in enumerate(outcomes):
            if created is None:
                stats["failed"] += 1
            else:
                stats["created"] += created
            progress = {
                "type": "progress", "current": idx + 1, "total": len(ids),
                "anchor_id": anchor_id, "ok": created is not None,
            }
            yield f"data: {json.dumps(progress)}\n\n"
            await asyncio.sleep(delay)

        log.info("Regeneration stream for %s anchors finished: %s", kind.value, stats)
        yield f"data: {json.dumps({'type': 'complete', 'stats': stats})}\n\n"

    return StreamingResponse(stream(), media_type="text/event-stream")


@app.post("/api/opportunities/regenerate", tags=["Matching"],
          summary="Regenerate opportunities for every anchor of a kind (SSE progress stream)")
async def regenerate(body: RegenerateRequest):
    return _regenerate_stream(body.kind, body.top_k, body.min_score)


@app.post("/api/opportunities/generate", response_model=GenerateResult, tags=["Matching"],
          summary="Score one anchor against its counterparties and persist the top matches")
async def generate(body: GenerateRequest, session: Session = Depends(db_session)):
    result = GENERATORS[body.kind](session, body.anchor_id, body.top_k, body.min_score)
    session.commit()
    return result


# ---------------------------------------------------------------------------
# Routes: Opportunities
# ---------------------------------------------------------------------------


@app.get("/api/opportunities", response_model=OpportunityListResponse, tags=["Opportunities"],
         summary="List opportunities for an entity or by status")
async def list_opportunities(
    kind: EntityKind | None = Query(None, description="FUNDRAISER, CAPITAL_PROVIDER or PARTNER"),
    entity_id: int | None = Query(None, description="Entity id, used together with kind"),
    status: OpportunityStatus | None = Query(None, description="Pipeline status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=200),
    session: Session = Depends(db_session),
):
    store = OpportunityStore(session)
    if kind is not None and entity_id is not None:
        items, total = store.list_for_entity(kind, entity_id, page, limit)
    elif status is not None:
        items, total = store.list_by_status(status, page, limit)
    else:
        raise HTTPException(400, "Specify kind and entity_id, or status")
    return {
        "items": [services.opportunity_summary(o) for o in items],
        "total": total, "page": page, "limit": limit,
    }


@app.get("/api/opportunities/{opportunity_id}", response_model=OpportunityOut, tags=["Opportunities"],
         summary="Get a single opportunity")
async def get_opportunity(opportunity_id: int, session: Session = Depends(db_session)):
    return services.opportunity_summary(_get_or_404(OpportunityStore(session), opportunity_id))


@app.patch("/api/opportunities/{opportunity_id}/status", response_model=OpportunityOut,
           tags=["Opportunities"], summary="Change the pipeline status")
async def update_status(opportunity_id: int, body: StatusUpdate, session: Session = Depends(db_session)):
    opp = OpportunityStore(session).update_status(opportunity_id, body.status, body.reason)
    if opp is None:
        raise HTTPException(404, "Opportunity not found")
    session.commit()
    return services.opportunity_summary(opp)


@app.patch("/api/opportunities/{opportunity_id}/fields", response_model=OpportunityOut,
           tags=["Opportunities"], summary="Update deal-economics fields")
async def update_fields(opportunity_id: int, body: DealFieldsUpdate, session: Session = Depends(db_session)):
    fields = body.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(400, "No fields to update")
    opp = OpportunityStore(session).update_fields(opportunity_id, fields)
    if opp is None:
        raise HTTPException(404, "Opportunity not found")
    session.commit()
    return services.opportunity_summary(opp)


@app.post("/api/opportunities/{opportunity_id}/enrich", response_model=OpportunityOut,
          tags=["Opportunities"], summary="Fill missing deal fields from the fundraiser's ask and funds")
async def enrich(opportunity_id: int, session: Session = Depends(db_session)):
    opp = enrich_deal_fields(session, opportunity_id)
    if opp is None:
        raise HTTPException(404, "Opportunity not found")
    session.commit()
    return services.opportunity_summary(opp)


# ---------------------------------------------------------------------------
# Routes: Events
# ---------------------------------------------------------------------------


@app.get("/api/opportunities/{opportunity_id}/events", response_model=list[EventOut], tags=["Events"],
         summary="Audit log of an opportunity, oldest first")
async def list_events(opportunity_id: int, session: Session = Depends(db_session)):
    store = OpportunityStore(session)
    _get_or_404(store, opportunity_id)
    return [services.event_summary(e) for e in store.list_events(opportunity_id)]


@app.post("/api/opportunities/{opportunity_id}/events", response_model=EventOut, status_code=201,
          tags=["Events"], summary="Record a note, email, meeting, pilot start or signed deal")
async def create_event(opportunity_id: int, body: EventCreate, session: Session = Depends(db_session)):
    store = OpportunityStore(session)
    _get_or_404(store, opportunity_id)
    event = store.log_event(opportunity_id, body.type, body.payload)
    session.commit()
    return services.event_summary(event)


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("dealflow.app:app", host="127.0.0.1", port=8001, reload=True)


if __name__ == "__main__":
    main()
