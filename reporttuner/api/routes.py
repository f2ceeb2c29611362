"""FastAPI routes for feedback ingestion, generation, and retraining.

Service dependencies are resolved from ``app.state`` (populated by
``main.build_components``) through ``Depends`` with the ``Annotated`` pattern.

# ─── API ROUTE MAP ─────────────────────────────────────────────────────
#
# Endpoint                         Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/feedback                 POST    Store rated section → maybe schedule cycle
# /api/v1/sections/generate        POST    Draft a section with the current model
# /api/v1/retraining/run           POST    Run one retraining cycle now
# /api/v1/retraining/reconcile     POST    Poll the pending fine-tune job
# /api/v1/retraining/status        GET     Qualifying count, registry, recent cycles
# /api/v1/model                    GET     Model generation would use right now
# /api/v1/health                   GET     Health check + provider status
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request

from reporttuner import __version__
from reporttuner.api.schemas import (
    ErrorResponse,
    FeedbackResponse,
    GenerateSectionRequest,
    GenerateSectionResponse,
    HealthResponse,
    ModelResponse,
    ReconcileResponse,
    RetrainingStatusResponse,
)
from reporttuner.config.settings import Settings
from reporttuner.interfaces.state_store import IStateStore
from reporttuner.models.cycle import CycleOutcome
from reporttuner.models.feedback import FeedbackSubmission
from reporttuner.pipeline.orchestrator import RetrainingPipeline
from reporttuner.pipeline.reconciler import JobReconciler
from reporttuner.services.feedback_ingestion import FeedbackIngestionService
from reporttuner.services.model_registry import ModelRegistry
from reporttuner.services.section_generation import SectionGenerationService
from reporttuner.services.threshold_trigger import ThresholdTrigger
from reporttuner.utils.errors import LLMError
from reporttuner.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_RECENT_CYCLES = 10


# ---------------------------------------------------------------------------
# Dependency injection helpers: resolve singletons from app.state
# ---------------------------------------------------------------------------


def _get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _get_ingestion(request: Request) -> FeedbackIngestionService:
    return request.app.state.ingestion_service


def _get_generation(request: Request) -> SectionGenerationService:
    return request.app.state.generation_service


def _get_pipeline(request: Request) -> RetrainingPipeline:
    return request.app.state.pipeline


def _get_reconciler(request: Request) -> JobReconciler:
    return request.app.state.reconciler


def _get_registry(request: Request) -> ModelRegistry:
    return request.app.state.model_registry


def _get_trigger(request: Request) -> ThresholdTrigger:
    return request.app.state.trigger


def _get_state_store(request: Request) -> IStateStore:
    return request.app.state.state_store


SettingsDep = Annotated[Settings, Depends(_get_settings)]
IngestionDep = Annotated[FeedbackIngestionService, Depends(_get_ingestion)]
GenerationDep = Annotated[SectionGenerationService, Depends(_get_generation)]
PipelineDep = Annotated[RetrainingPipeline, Depends(_get_pipeline)]
ReconcilerDep = Annotated[JobReconciler, Depends(_get_reconciler)]
RegistryDep = Annotated[ModelRegistry, Depends(_get_registry)]
TriggerDep = Annotated[ThresholdTrigger, Depends(_get_trigger)]
StateStoreDep = Annotated[IStateStore, Depends(_get_state_store)]


# ---------------------------------------------------------------------------
# Feedback + generation
# ---------------------------------------------------------------------------


@router.post(
    "/feedback",
    response_model=FeedbackResponse,
    status_code=201,
    responses={422: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Submit a rated report section",
)
async def submit_feedback(
    submission: FeedbackSubmission,
    background_tasks: BackgroundTasks,
    ingestion: IngestionDep,
    pipeline: PipelineDep,
    settings: SettingsDep,
) -> FeedbackResponse:
    """Store the submission; optionally schedule a retraining cycle afterwards.

    The cycle runs after the response is sent and its outcome never
    affects this request.
    """
    record = await ingestion.submit(submission)
    if settings.retrain_on_ingest:
        background_tasks.add_task(pipeline.run_cycle)
    return FeedbackResponse(
        id=record.id,
        created_at=record.created_at,
        retraining_scheduled=settings.retrain_on_ingest,
    )


@router.post(
    "/sections/generate",
    response_model=GenerateSectionResponse,
    responses={500: {"model": ErrorResponse}},
    summary="Generate a report section",
)
async def generate_section(
    body: GenerateSectionRequest,
    generation: GenerationDep,
) -> GenerateSectionResponse:
    try:
        content, model_id = await generation.generate(body.section, body.context)
    except LLMError as exc:
        _logger.error("section_generation_failed", section=body.section, error=exc.message)
        raise HTTPException(status_code=500, detail="Failed to generate report section") from exc
    return GenerateSectionResponse(section=body.section, content=content, model=model_id)


# ---------------------------------------------------------------------------
# Retraining
# ---------------------------------------------------------------------------


@router.post(
    "/retraining/run",
    response_model=CycleOutcome,
    summary="Run one retraining cycle now",
)
async def run_retraining(pipeline: PipelineDep) -> CycleOutcome:
    """Run a cycle synchronously and return its outcome.

    Lease contention and threshold misses are reported in the outcome,
    not as HTTP errors.
    """
    return await pipeline.run_cycle()


@router.post(
    "/retraining/reconcile",
    response_model=ReconcileResponse,
    responses={502: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Poll the pending fine-tune job",
)
async def reconcile_job(
    reconciler: ReconcilerDep,
    registry: RegistryDep,
) -> ReconcileResponse:
    job = await reconciler.reconcile_once()
    return ReconcileResponse(
        polled=job is not None,
        job=job,
        registry=await registry.get_entry(),
    )


@router.get(
    "/retraining/status",
    response_model=RetrainingStatusResponse,
    summary="Retraining trigger and cycle status",
)
async def retraining_status(
    trigger: TriggerDep,
    registry: RegistryDep,
    state_store: StateStoreDep,
) -> RetrainingStatusResponse:
    return RetrainingStatusResponse(
        qualifying_count=await trigger.pending_count(),
        threshold=trigger.batch_size,
        min_rating=trigger.min_rating,
        registry=await registry.get_entry(),
        recent_cycles=await state_store.list_cycles(limit=_RECENT_CYCLES),
    )


@router.get(
    "/model",
    response_model=ModelResponse,
    summary="Model currently used for generation",
)
async def current_model(registry: RegistryDep) -> ModelResponse:
    model_id = await registry.resolve_model_id()
    try:
        entry = await registry.get_entry()
    except Exception as exc:
        _logger.warning("registry_read_failed", error=str(exc))
        entry = None
    return ModelResponse(
        model_id=model_id,
        is_default=entry is None or entry.serving_model_id is None,
        entry=entry,
    )


# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability."""
    providers: dict[str, Any] = {}
    if hasattr(request.app.state, "provider_registry"):
        providers = dict(request.app.state.provider_registry)

    status = "healthy" if providers.get("llm", False) and providers.get("fine_tune", False) else "degraded"
    return HealthResponse(
        status=status,
        version=__version__,
        providers=providers,
    )
