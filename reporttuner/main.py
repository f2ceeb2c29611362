"""ReportTuner FastAPI application entry point.

Wires every provider, service, and route together via dependency
injection.  Configuration comes from ``.env`` / environment variables
(:class:`Settings`) layered over ``config/config.yaml``.

``build_components`` is shared with the CLI so both surfaces run the
exact same object graph.
"""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from reporttuner import __version__
from reporttuner.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from reporttuner.api.routes import router as api_router
from reporttuner.config.loader import load_config
from reporttuner.config.settings import Settings
from reporttuner.interfaces.blob_store import IBlobStore
from reporttuner.pipeline.orchestrator import RetrainingPipeline
from reporttuner.pipeline.reconciler import JobReconciler
from reporttuner.providers.blob.filesystem_blob_store import FilesystemBlobStore
from reporttuner.providers.feedback.sqlite_feedback_store import SQLiteFeedbackStore
from reporttuner.providers.fine_tune.openai_fine_tune_provider import OpenAIFineTuneProvider
from reporttuner.providers.lease.sqlite_lease_provider import SQLiteLeaseProvider
from reporttuner.providers.llm.openai_provider import OpenAILLMProvider
from reporttuner.providers.state.sqlite_state_store import SQLiteStateStore
from reporttuner.services.archival_sink import ArchivalSink
from reporttuner.services.consumption_marker import ConsumptionMarker
from reporttuner.services.feedback_ingestion import FeedbackIngestionService
from reporttuner.services.job_submitter import FineTuneJobSubmitter
from reporttuner.services.model_registry import ModelRegistry
from reporttuner.services.section_generation import SectionGenerationService
from reporttuner.services.threshold_trigger import ThresholdTrigger
from reporttuner.services.training_set_builder import SYSTEM_INSTRUCTION, TrainingSetBuilder
from reporttuner.utils.logging import configure_logging, get_logger
from reporttuner.utils.retry import RetryPolicy

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_blob_store(app_settings: Settings) -> IBlobStore:
    """Return the archive backend named by ``BLOB_BACKEND``."""
    if app_settings.blob_backend == "gcs":
        # Imported lazily so filesystem deployments don't load the GCS client.
        from reporttuner.providers.blob.gcs_blob_store import GCSBlobStore

        return GCSBlobStore(
            bucket_name=app_settings.gcs_bucket,
            project=app_settings.gcp_project or None,
        )
    return FilesystemBlobStore(root=app_settings.blob_dir)


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_components(
    app_settings: Settings,
    config: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Construct every provider and service instance.

    Returns a flat dict of named components; the API stores them on
    ``app.state`` and the CLI uses them directly.
    """
    app_settings.validate_retraining()
    config = config if config is not None else load_config(settings=app_settings)
    generation_cfg = config.get("generation", {})

    retry_policy = RetryPolicy(
        max_attempts=app_settings.retry_max_attempts,
        base_delay=app_settings.retry_base_delay,
        max_delay=app_settings.retry_max_delay,
    )

    # -- Stores --
    feedback_store = SQLiteFeedbackStore(db_path=app_settings.feedback_db_path)
    state_store = SQLiteStateStore(db_path=app_settings.state_db_path)
    lease_provider = SQLiteLeaseProvider(db_path=app_settings.state_db_path)
    blob_store = _build_blob_store(app_settings)

    # -- External providers --
    fine_tune_provider = OpenAIFineTuneProvider(settings=app_settings)
    llm_provider = OpenAILLMProvider(settings=app_settings)

    # -- Retraining components --
    model_registry = ModelRegistry(
        state_store=state_store,
        default_model=app_settings.default_base_model,
        cache_ttl=app_settings.registry_cache_ttl,
    )
    trigger = ThresholdTrigger(
        feedback_store=feedback_store,
        min_rating=app_settings.retrain_min_rating,
        batch_size=app_settings.retrain_batch_size,
    )
    job_submitter = FineTuneJobSubmitter(
        provider=fine_tune_provider,
        base_model=app_settings.fine_tune_base_model,
        retry_policy=retry_policy,
    )
    pipeline = RetrainingPipeline(
        feedback_store=feedback_store,
        state_store=state_store,
        lease_provider=lease_provider,
        trigger=trigger,
        builder=TrainingSetBuilder(),
        archival_sink=ArchivalSink(
            blob_store=blob_store,
            retry_policy=retry_policy,
            prefix=app_settings.blob_prefix,
        ),
        job_submitter=job_submitter,
        model_registry=model_registry,
        consumption_marker=ConsumptionMarker(
            feedback_store=feedback_store,
            retry_policy=retry_policy,
        ),
        lease_ttl_seconds=app_settings.lease_ttl_seconds,
        resume_incomplete=app_settings.cycle_resume_enabled,
    )
    reconciler = JobReconciler(
        provider=fine_tune_provider,
        model_registry=model_registry,
        lease_provider=lease_provider,
        retry_policy=retry_policy,
        lease_ttl_seconds=app_settings.lease_ttl_seconds,
    )

    # -- Request-facing services --
    ingestion_service = FeedbackIngestionService(feedback_store=feedback_store)
    generation_service = SectionGenerationService(
        llm_provider=llm_provider,
        model_registry=model_registry,
        system_prompt=generation_cfg.get("system_prompt") or SYSTEM_INSTRUCTION,
        temperature=float(generation_cfg.get("temperature", 0.7)),
        max_tokens=int(generation_cfg.get("max_tokens", 1000)),
    )

    # -- Provider registry for /health --
    provider_registry: dict[str, Any] = {
        "llm": llm_provider.is_available(),
        "fine_tune": fine_tune_provider.is_available(),
        "feedback_store": feedback_store.get_provider_name(),
        "state_store": state_store.get_provider_name(),
        "blob_store": blob_store.get_provider_name(),
    }

    return {
        "settings": app_settings,
        "config": config,
        "feedback_store": feedback_store,
        "state_store": state_store,
        "lease_provider": lease_provider,
        "blob_store": blob_store,
        "model_registry": model_registry,
        "trigger": trigger,
        "pipeline": pipeline,
        "reconciler": reconciler,
        "ingestion_service": ingestion_service,
        "generation_service": generation_service,
        "provider_registry": provider_registry,
    }


async def initialize_components(components: dict[str, Any]) -> None:
    """Create backing tables for every store.  Safe to call repeatedly."""
    await components["feedback_store"].initialize()
    await components["state_store"].initialize()
    await components["lease_provider"].initialize()


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


def _make_lifespan(app_settings: Settings):  # noqa: ANN202
    @asynccontextmanager
    async def _lifespan(application: FastAPI):  # noqa: ANN202
        """Initialise stores on startup; stop the reconciler on shutdown."""
        components = build_components(app_settings)
        for key, value in components.items():
            setattr(application.state, key, value)
        await initialize_components(components)

        reconcile_task: asyncio.Task | None = None
        if app_settings.reconcile_interval_seconds > 0:
            reconcile_task = asyncio.create_task(
                components["reconciler"].run_forever(app_settings.reconcile_interval_seconds)
            )

        _logger.info(
            "app_startup",
            service=components["config"].get("app", {}).get("name", "reporttuner"),
            version=__version__,
            log_level=app_settings.log_level,
            environment=app_settings.app_env,
            blob_backend=app_settings.blob_backend,
            reconcile_interval_s=app_settings.reconcile_interval_seconds,
        )

        yield

        if reconcile_task is not None:
            reconcile_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reconcile_task
        _logger.info("app_shutdown")

    return _lifespan


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(app_settings: Settings | None = None) -> FastAPI:
    """Build and configure the FastAPI application."""
    app_settings = app_settings or settings
    application = FastAPI(
        title="ReportTuner API",
        version=__version__,
        description=(
            "Collect rated forensic report sections, fine-tune a model on the "
            "best of them, and generate new sections with the latest model."
        ),
        lifespan=_make_lifespan(app_settings),
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    application.include_router(api_router)
    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "reporttuner.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
