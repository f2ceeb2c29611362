"""OpenAI fine-tuning provider adapter.

Wraps an explicitly constructed ``openai.AsyncOpenAI`` client to implement
:class:`IFineTuneProvider`.  The client is injected (or built from
Settings) rather than held as a module-level singleton, so each pipeline
owns its client and tests can pass a fake.

Error mapping keeps the retry decision out of the orchestrator:

    timeout / connection / 429 rate limit / 5xx   →  TransientIOError
    429 insufficient_quota, other 4xx             →  ProviderRejection
"""

from __future__ import annotations

from typing import Any

import openai
import structlog

from reporttuner.config.settings import Settings
from reporttuner.interfaces.fine_tune_provider import IFineTuneProvider
from reporttuner.models.registry import FineTuneJob, JobStatus
from reporttuner.utils.errors import ProviderRejection, TransientIOError

logger = structlog.get_logger(logger_name=__name__)

_STATUS_MAP: dict[str, JobStatus] = {
    "validating_files": JobStatus.QUEUED,
    "queued": JobStatus.QUEUED,
    "running": JobStatus.RUNNING,
    "succeeded": JobStatus.SUCCEEDED,
    "failed": JobStatus.FAILED,
    "cancelled": JobStatus.FAILED,
}

_TRAINING_FILENAME = "training-data.jsonl"


def _error_code(exc: openai.APIStatusError) -> str | None:
    body = exc.body
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict):
            return error.get("code")
    return getattr(exc, "code", None)


def _to_job(raw: Any) -> FineTuneJob:
    provider_status = str(getattr(raw, "status", "") or "")
    return FineTuneJob(
        id=raw.id,
        status=_STATUS_MAP.get(provider_status, JobStatus.QUEUED),
        model_id=getattr(raw, "fine_tuned_model", None),
        base_model=getattr(raw, "model", None),
        training_file=getattr(raw, "training_file", None),
        provider_status=provider_status or None,
    )


class OpenAIFineTuneProvider(IFineTuneProvider):
    """Fine-tune provider backed by the OpenAI files + fine_tuning APIs."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        if client is None and settings is None:
            msg = "OpenAIFineTuneProvider needs either settings or a client"
            raise ValueError(msg)
        if client is None and settings.openai_api_key:
            client_kwargs: dict = {
                "api_key": settings.openai_api_key,
                "timeout": openai.Timeout(settings.openai_timeout_seconds, connect=10.0),
                # Retries are owned by reporttuner.utils.retry, not the SDK.
                "max_retries": 0,
            }
            if settings.openai_base_url:
                client_kwargs["base_url"] = settings.openai_base_url
            client = openai.AsyncOpenAI(**client_kwargs)
        # None until a key is configured; calls then fail as ProviderRejection.
        self._client: openai.AsyncOpenAI | None = client

    def is_available(self) -> bool:
        return self._client is not None

    def _require_client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            raise ProviderRejection(
                message="OPENAI_API_KEY is not configured",
                provider_name=self.get_provider_name(),
            )
        return self._client

    async def upload(self, data: bytes, purpose: str = "fine-tune") -> str:
        try:
            file_obj = await self._require_client().files.create(
                file=(_TRAINING_FILENAME, data),
                purpose=purpose,
            )
        except openai.APIError as exc:
            raise self._translate(exc, "upload") from exc

        logger.info("openai_file_uploaded", file_id=file_obj.id, bytes=len(data))
        return file_obj.id

    async def create_job(self, base_model: str, file_id: str) -> FineTuneJob:
        try:
            raw = await self._require_client().fine_tuning.jobs.create(
                model=base_model,
                training_file=file_id,
            )
        except openai.APIError as exc:
            raise self._translate(exc, "create_job") from exc

        job = _to_job(raw)
        logger.info(
            "openai_fine_tune_job_created",
            job_id=job.id,
            status=job.provider_status,
            base_model=base_model,
            file_id=file_id,
        )
        return job

    async def retrieve_job(self, job_id: str) -> FineTuneJob:
        try:
            raw = await self._require_client().fine_tuning.jobs.retrieve(job_id)
        except openai.APIError as exc:
            raise self._translate(exc, "retrieve_job") from exc
        return _to_job(raw)

    def get_provider_name(self) -> str:
        return "openai"

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _translate(self, exc: openai.APIError, op: str) -> Exception:
        """Map an SDK error onto TransientIOError or ProviderRejection."""
        provider = self.get_provider_name()
        if isinstance(exc, openai.APIConnectionError):
            # Also covers APITimeoutError.
            return TransientIOError(message=f"{op} connection failed: {exc}", provider_name=provider)
        if isinstance(exc, openai.RateLimitError):
            if _error_code(exc) == "insufficient_quota":
                return ProviderRejection(message=f"{op} quota exhausted: {exc}", provider_name=provider)
            return TransientIOError(message=f"{op} rate limited: {exc}", provider_name=provider)
        if isinstance(exc, openai.InternalServerError):
            return TransientIOError(message=f"{op} server error: {exc}", provider_name=provider)
        if isinstance(exc, openai.APIStatusError):
            return ProviderRejection(
                message=f"{op} rejected ({exc.status_code}): {exc}",
                provider_name=provider,
            )
        return TransientIOError(message=f"{op} failed: {exc}", provider_name=provider)
