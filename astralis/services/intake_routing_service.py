"""Intake routing - classify new intake requests and place them in a pipeline.

With an AI key configured the request is classified by the model and
matched to a pipeline (name, then description, then the model's
suggested pipeline). Without one, a keyword router picks the pipeline.
"""

from __future__ import annotations

import json
import logging
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from astralis.db.enums import DecisionStatus, DecisionType, InputSource, LogCategory
from astralis.db.models import IntakeRequest, Pipeline
from astralis.schemas.intake import IntakeClassification
from astralis.services import (
    agent_decision_service,
    agent_log_service,
    ai_provider,
    intake_service,
    pipeline_service,
)
from astralis.services.ai_provider import ChatMessage
from astralis.services.ai_response_validation import parse_json_object, validate_model
from astralis.utils.time_windows import utcnow

logger = logging.getLogger(__name__)

KEYWORD_DEFAULT_CONFIDENCE = 0.3
KEYWORD_URGENT_CONFIDENCE = 0.7
KEYWORD_DOCUMENT_CONFIDENCE = 0.6
URGENT_KEYWORDS = ("urgent", "emergency")
DOCUMENT_KEYWORDS = ("document", "invoice")

SYSTEM_PROMPT = (
    "You classify inbound business requests. Respond with a single JSON object "
    'with keys: "category" (one of SALES_INQUIRY, SUPPORT_REQUEST, BILLING_QUESTION, '
    'PARTNERSHIP, GENERAL), "priority" (1-5, 5 most urgent), "tags" (list of short '
    'strings), "suggested_pipeline" (pipeline name or null), "confidence" (0-1), '
    '"reasoning" (one sentence).'
)


class RoutingFailedError(Exception):
    """The model call or its output could not be used."""
    pass


def _routing_result(
    assigned: bool,
    confidence: float,
    reasoning: str,
    used_ai: bool,
    pipeline_id: UUID | None = None,
    error: str | None = None,
) -> dict:
    result = {
        "assigned": assigned,
        "pipeline_id": str(pipeline_id) if pipeline_id else None,
        "confidence": confidence,
        "reasoning": reasoning,
        "used_ai_routing": used_ai,
    }
    if error:
        result["error"] = error
    return result


# =============================================================================
# Keyword routing
# =============================================================================

def keyword_route(intake: IntakeRequest, pipelines: list[Pipeline]) -> tuple[Pipeline | None, float, str]:
    """Pick (pipeline, confidence, reasoning) from title/description keywords."""
    if not pipelines:
        return None, 0.0, "No pipelines available for this organization"

    content = f"{intake.title} {intake.description or ''}".lower()
    if any(word in content for word in URGENT_KEYWORDS):
        return pipelines[0], KEYWORD_URGENT_CONFIDENCE, "Urgent request detected - routed to priority pipeline"
    if any(word in content for word in DOCUMENT_KEYWORDS):
        document_pipeline = next(
            (p for p in pipelines if "document" in p.name.lower()), pipelines[0]
        )
        return document_pipeline, KEYWORD_DOCUMENT_CONFIDENCE, "Document processing request detected"
    return (
        pipelines[0],
        KEYWORD_DEFAULT_CONFIDENCE,
        "Fallback routing to first available pipeline (AI routing not configured)",
    )


# =============================================================================
# AI routing
# =============================================================================

def match_pipeline(
    classification: IntakeClassification, pipelines: list[Pipeline]
) -> tuple[Pipeline | None, str]:
    """Match by name, then description, then suggested pipeline name."""
    category = classification.category.value.lower()
    spaced = category.replace("_", " ")

    for pipeline in pipelines:
        name = pipeline.name.lower()
        if category in name or spaced in name:
            return pipeline, "name_match"

    for pipeline in pipelines:
        description = (pipeline.description or "").lower()
        if description and (category in description or spaced in description):
            return pipeline, "description_match"

    suggested = (classification.suggested_pipeline or "").strip().lower()
    if suggested:
        for pipeline in pipelines:
            name = pipeline.name.lower()
            if suggested in name or name in suggested:
                return pipeline, "suggested_match"

    return None, "none"


async def classify_intake(intake: IntakeRequest, pipelines: list[Pipeline]) -> IntakeClassification:
    provider = ai_provider.get_configured_provider()
    if provider is None:
        raise RoutingFailedError("AI provider not configured")

    pipeline_lines = "\n".join(
        f"- {p.name}: {p.description or 'no description'}" for p in pipelines
    ) or "- (none)"
    user_prompt = (
        f"Title: {intake.title}\n"
        f"Description: {intake.description or ''}\n"
        f"Source: {intake.source}\n"
        f"Request data: {json.dumps(intake.request_data or {}, default=str)}\n\n"
        f"Available pipelines:\n{pipeline_lines}"
    )
    messages = [
        ChatMessage(role="system", content=SYSTEM_PROMPT),
        ChatMessage(role="user", content=user_prompt),
    ]
    try:
        response = await provider.chat(messages, temperature=0.2, max_tokens=500)
    except (httpx.HTTPError, KeyError, IndexError, ValueError) as exc:
        raise RoutingFailedError(str(exc)) from exc

    classification = validate_model(IntakeClassification, parse_json_object(response.content))
    if classification is None:
        raise RoutingFailedError("Classification output was not valid JSON")
    return classification


# =============================================================================
# Entry point
# =============================================================================

async def route_intake(db: Session, org_id: UUID, intake: IntakeRequest) -> dict:
    """
    Route a freshly created intake request.

    Never raises for routing problems: a model failure leaves the request
    NEW with ai_failed meta for manual routing.
    """
    pipelines = [
        p for p in pipeline_service.list_pipelines(db, org_id, active_only=True) if p.stages
    ]

    if not ai_provider.get_configured_provider():
        pipeline, confidence, reasoning = keyword_route(intake, pipelines)
        meta = {
            "confidence": confidence,
            "reasoning": reasoning,
            "suggested_pipelines": [str(p.id) for p in pipelines],
            "routing_method": "fallback_keyword",
            "routed_at": utcnow().isoformat(),
        }
        if pipeline is None:
            intake.ai_routing_meta = meta
            db.commit()
            return _routing_result(False, confidence, reasoning, used_ai=False)
        intake_service.assign_intake(db, org_id, intake, pipeline.id, routing_meta=meta)
        return _routing_result(True, confidence, reasoning, used_ai=False, pipeline_id=pipeline.id)

    try:
        classification = await classify_intake(intake, pipelines)
    except RoutingFailedError as exc:
        logger.warning("AI routing failed for intake %s: %s", intake.id, exc)
        intake.ai_routing_meta = {
            "routing_method": "ai_failed",
            "error": str(exc),
            "failed_at": utcnow().isoformat(),
        }
        agent_log_service.error(
            db,
            LogCategory.CLASSIFICATION,
            "intake_routing_failed",
            f"AI routing failed for intake {intake.id}",
            org_id=org_id,
            task_id=str(intake.id),
            error=exc,
        )
        db.commit()
        return _routing_result(
            False, 0.0, "AI routing failed - manual routing required", used_ai=True,
            error="AI routing failed",
        )

    pipeline, match_method = match_pipeline(classification, pipelines)
    meta = {
        "category": classification.category.value,
        "priority": classification.priority,
        "tags": classification.tags,
        "suggested_pipeline": classification.suggested_pipeline,
        "confidence": classification.confidence,
        "reasoning": classification.reasoning,
        "pipeline_match_method": match_method,
        "routing_method": "ai",
        "routed_at": utcnow().isoformat(),
    }
    agent_log_service.info(
        db,
        LogCategory.CLASSIFICATION,
        "intake_classified",
        f"Intake {intake.id} classified as {classification.category.value}",
        org_id=org_id,
        task_id=str(intake.id),
        metadata=meta,
    )

    if pipeline is None:
        intake.ai_routing_meta = meta
        db.commit()
        return _routing_result(
            False, classification.confidence,
            classification.reasoning or "No matching pipeline", used_ai=True,
        )

    intake_service.assign_intake(db, org_id, intake, pipeline.id, routing_meta=meta)
    agent_decision_service.record_decision(
        db,
        org_id,
        decision_type=DecisionType.ASSIGN_PIPELINE,
        input_source=InputSource.API,
        confidence=classification.confidence,
        reasoning=classification.reasoning,
        input_data={"intake_id": str(intake.id), "title": intake.title},
        actions=[
            {
                "type": "assign_pipeline",
                "priority": 0,
                "params": {"intake_id": str(intake.id), "pipeline_id": str(pipeline.id)},
            }
        ],
        status=DecisionStatus.EXECUTED,
        task_id=str(intake.id),
        result={"pipeline_id": str(pipeline.id), "match_method": match_method},
    )
    return _routing_result(
        True, classification.confidence,
        classification.reasoning or f"Matched pipeline {pipeline.name}", used_ai=True,
        pipeline_id=pipeline.id,
    )
