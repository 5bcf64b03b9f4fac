from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Generator

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from riskmatch import services
from riskmatch.aggregate import ValidationError
from riskmatch.config import get_settings
from riskmatch.db import init_db, session_generator, session_scope
from riskmatch.models import Assessment, Template, VendorProfile
from riskmatch.schemas import (
    AnswersReplace,
    AssessmentCreate,
    AssessmentOut,
    BatchScoreRequest,
    PrioritiesIn,
    StatsOut,
    TemplateCreate,
    TemplateOut,
    VendorIn,
    VendorOut,
)

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="riskmatch",
    version="0.1.0",
    description=(
        "Compliance assessment scoring API. Score evidence-backed answers, "
        "derive gaps and risks, plan remediation and match vendors. "
        "All endpoints return JSON. No authentication required."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Templates", "description": "Weighted questionnaire templates."},
        {"name": "Assessments", "description": "Answer sets, priorities and results."},
        {"name": "Scoring", "description": "Risk scoring and gap derivation."},
        {"name": "Vendors", "description": "Vendor profiles, strategy matrix and matching."},
        {"name": "Stats", "description": "Aggregate statistics and configuration."},
    ],
)


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    yield from session_generator()


def _get_or_404(session: Session, model, entity_id: int, label: str = "Entity"):
    obj = services.get_entity(session, model, entity_id)
    if not obj:
        raise HTTPException(404, f"{label} not found")
    return obj


# ---------------------------------------------------------------------------
# Routes: Templates
# ---------------------------------------------------------------------------


@app.post("/api/templates", response_model=TemplateOut, status_code=201,
          tags=["Templates"], summary="Create a questionnaire template")
async def create_template(body: TemplateCreate, session: Session = Depends(db_session)):
    template = services.create_template(session, body.model_dump())
    session.commit()
    session.refresh(template)
    return services.template_detail(template)


@app.get("/api/templates/{template_id}", response_model=TemplateOut,
         tags=["Templates"], summary="Get a template with sections and questions")
async def get_template(template_id: int, session: Session = Depends(db_session)):
    return services.template_detail(_get_or_404(session, Template, template_id, "Template"))


# ---------------------------------------------------------------------------
# Routes: Assessments
# ---------------------------------------------------------------------------


@app.post("/api/assessments", response_model=AssessmentOut, status_code=201,
          tags=["Assessments"], summary="Start an assessment from a template")
async def create_assessment(body: AssessmentCreate, session: Session = Depends(db_session)):
    _get_or_404(session, Template, body.template_id, "Template")
    assessment = Assessment(template_id=body.template_id, organization_name=body.organization_name)
    session.add(assessment)
    session.commit()
    session.refresh(assessment)
    return services.assessment_detail(assessment)


@app.put("/api/assessments/{assessment_id}/answers", response_model=AssessmentOut,
         tags=["Assessments"], summary="Replace the full answer set of an assessment")
async def replace_answers(assessment_id: int, body: AnswersReplace,
                          session: Session = Depends(db_session)):
    assessment = _get_or_404(session, Assessment, assessment_id, "Assessment")
    try:
        services.replace_answers(session, assessment, [a.model_dump() for a in body.answers])
    except services.AssessmentStateError as exc:
        raise HTTPException(409, str(exc))
    except ValidationError as exc:
        raise HTTPException(422, str(exc))
    session.commit()
    session.refresh(assessment)
    return services.assessment_detail(assessment)


@app.put("/api/assessments/{assessment_id}/priorities",
         tags=["Assessments"], summary="Set the organization's vendor selection priorities")
async def set_priorities(assessment_id: int, body: PrioritiesIn,
                         session: Session = Depends(db_session)):
    assessment = _get_or_404(session, Assessment, assessment_id, "Assessment")
    row = services.set_priorities(session, assessment, body.model_dump())
    session.commit()
    return services.to_core_priorities(row).to_dict()


@app.get("/api/assessments/{assessment_id}", response_model=AssessmentOut,
         tags=["Assessments"], summary="Get assessment summary with gaps and risks")
async def get_assessment(assessment_id: int, session: Session = Depends(db_session)):
    return services.assessment_detail(_get_or_404(session, Assessment, assessment_id, "Assessment"))


@app.get("/api/assessments/{assessment_id}/breakdown",
         tags=["Scoring"], summary="Per-section score breakdown")
async def get_breakdown(assessment_id: int, session: Session = Depends(db_session)):
    assessment = _get_or_404(session, Assessment, assessment_id, "Assessment")
    return services.breakdown(assessment).to_dict()


# ---------------------------------------------------------------------------
# Routes: Scoring (batch before parameterized to avoid route shadowing)
# ---------------------------------------------------------------------------


def _batch_stream(assessment_ids: list[int] | None):
    """SSE streaming wrapper for batch scoring.

    ``None`` scores every IN_PROGRESS assessment; an explicit list is scored
    as given, and ids that do not exist are reported as failures.
    """
    async def stream():
        with session_scope() as session:
            ids = services.pending_assessment_ids(session) if assessment_ids is None else list(assessment_ids)
            # Load names upfront so a rollback doesn't expire ORM objects
            names = dict(session.execute(
                select(Assessment.id, Assessment.organization_name).where(Assessment.id.in_(ids))
            ).all())
            total = len(ids)
            ok = failed = 0
            errors: dict[int, str] = {}

            for idx, assessment_id in enumerate(ids):
                name = names.get(assessment_id, "")
                yield f"data: {json.dumps({'type': 'progress', 'current': idx + 1, 'total': total, 'name': name})}\n\n"
                err = services.score_isolated(session, assessment_id)
                if err is None:
                    ok += 1
                else:
                    failed += 1
                    errors[assessment_id] = err

            stats = {"scored": ok, "failed": failed, "errors": errors}
            yield f"data: {json.dumps({'type': 'complete', 'stats': stats})}\n\n"

    return StreamingResponse(stream(), media_type="text/event-stream")


@app.post("/api/score/batch", tags=["Scoring"],
          summary="Score several assessments (SSE progress stream)")
async def score_batch(body: BatchScoreRequest | None = None):
    return _batch_stream(body.assessment_ids if body else None)


@app.post("/api/assessments/{assessment_id}/score", response_model=AssessmentOut,
          tags=["Scoring"], summary="Score an assessment and derive gaps and risks")
async def score_one(assessment_id: int, session: Session = Depends(db_session)):
    assessment = _get_or_404(session, Assessment, assessment_id, "Assessment")
    try:
        services.run_assessment_scoring(session, assessment)
    except services.AssessmentStateError as exc:
        session.rollback()
        raise HTTPException(409, str(exc))
    except ValidationError as exc:
        session.rollback()
        raise HTTPException(422, str(exc))
    session.commit()
    session.refresh(assessment)
    return services.assessment_detail(assessment)


# ---------------------------------------------------------------------------
# Routes: Strategy & vendor matching
# ---------------------------------------------------------------------------


@app.get("/api/assessments/{assessment_id}/strategy-matrix",
         tags=["Vendors"], summary="Remediation roadmap bucketed by timeline")
async def get_strategy_matrix(assessment_id: int, session: Session = Depends(db_session)):
    assessment = _get_or_404(session, Assessment, assessment_id, "Assessment")
    return services.strategy_matrix_for(session, assessment).to_dict()


@app.get("/api/assessments/{assessment_id}/vendor-matches",
         tags=["Vendors"], summary="Rank approved vendors against gaps and priorities")
async def get_vendor_matches(
    assessment_id: int,
    limit: int | None = Query(None, ge=1, le=100),
    min_score: float | None = Query(None, ge=0, le=140),
    session: Session = Depends(db_session),
):
    assessment = _get_or_404(session, Assessment, assessment_id, "Assessment")
    matches = services.vendor_matches_for(session, assessment, limit=limit, min_score=min_score)
    return {"total": len(matches), "matches": [m.to_dict() for m in matches]}


@app.post("/api/vendors", response_model=VendorOut, status_code=201,
          tags=["Vendors"], summary="Register a vendor profile")
async def create_vendor(body: VendorIn, session: Session = Depends(db_session)):
    row = services.create_vendor(session, body.model_dump())
    session.commit()
    session.refresh(row)
    return services.vendor_summary(row)


@app.get("/api/vendors", response_model=list[VendorOut],
         tags=["Vendors"], summary="List vendor profiles")
async def list_vendors(status: str | None = None, session: Session = Depends(db_session)):
    query = select(VendorProfile).order_by(VendorProfile.name, VendorProfile.id)
    if status:
        query = query.where(VendorProfile.status == status.strip().upper())
    return [services.vendor_summary(v) for v in session.execute(query).scalars().all()]


# ---------------------------------------------------------------------------
# Routes: Stats & config
# ---------------------------------------------------------------------------


@app.get("/api/stats", response_model=StatsOut,
         tags=["Stats"], summary="Get aggregate statistics and breakdowns")
async def get_stats(session: Session = Depends(db_session)):
    return services.compute_stats(session)


@app.get("/api/config", tags=["Stats"], summary="Effective scoring thresholds")
async def get_config():
    settings = get_settings()
    return settings.model_dump(exclude={"database_path"})


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn
    uvicorn.run("riskmatch.app:app", host="127.0.0.1", port=8002, reload=True)


if __name__ == "__main__":
    main()
