"""Model registry: the ``latest_model`` pointer used by section generation.

Writes come only from the retraining pipeline (after a job is accepted)
and from the job reconciler (once the job finishes).  Both happen under
the retraining lease, so the registry has a single writer at a time.

Reads go through :meth:`ModelRegistry.resolve_model_id`, which never
raises: a missing entry, an entry without a finished model, or a store
failure all fall back to the configured default base model.  Resolved
ids are held in a short ``cachetools.TTLCache`` so generation traffic
does not hit the state store on every request.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from cachetools import TTLCache

from reporttuner.interfaces.state_store import IStateStore
from reporttuner.models.registry import (
    REGISTRY_KEY,
    FineTuneJob,
    JobStatus,
    ModelRegistryEntry,
)
from reporttuner.utils.logging import get_logger

_CACHE_KEY = "model_id"


class ModelRegistry:
    """Reads and writes the singleton :class:`ModelRegistryEntry`."""

    def __init__(
        self,
        state_store: IStateStore,
        default_model: str,
        cache_ttl: int = 60,
    ) -> None:
        self._state_store = state_store
        self._default_model = default_model
        self._cache: TTLCache[str, str] | None = (
            TTLCache(maxsize=1, ttl=cache_ttl) if cache_ttl > 0 else None
        )
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def default_model(self) -> str:
        return self._default_model

    def invalidate(self) -> None:
        if self._cache is not None:
            self._cache.clear()

    async def get_entry(self) -> ModelRegistryEntry | None:
        """Return the stored entry, or ``None`` if no cycle has completed yet."""
        document = await self._state_store.find_one(REGISTRY_KEY)
        if document is None:
            return None
        return ModelRegistryEntry.model_validate(document)

    async def _write(self, entry: ModelRegistryEntry) -> ModelRegistryEntry:
        await self._state_store.upsert(REGISTRY_KEY, entry.model_dump(mode="json"))
        self.invalidate()
        return entry

    async def record_submission(
        self,
        job: FineTuneJob,
        *,
        cycle_id: str,
        training_size: int,
        base_model: str | None = None,
    ) -> ModelRegistryEntry:
        """Overwrite the entry with a freshly accepted job.

        ``model_id`` stays empty until the job finishes unless the provider
        already reported one.  The previously finished model is carried
        forward so generation keeps using it in the meantime.
        """
        previous = await self.get_entry()
        entry = ModelRegistryEntry(
            model_id=job.model_id,
            job_id=job.id,
            job_status=job.status,
            previous_model_id=previous.serving_model_id if previous else None,
            base_model=base_model or job.base_model,
            cycle_id=cycle_id,
            training_size=training_size,
            last_fine_tuned=datetime.now(tz=timezone.utc),  # noqa: UP017
        )
        await self._write(entry)
        self._logger.info(
            "registry_updated",
            cycle_id=cycle_id,
            job_id=job.id,
            model_id=job.model_id,
            training_size=training_size,
        )
        return entry

    async def record_job_result(self, job: FineTuneJob) -> ModelRegistryEntry | None:
        """Apply a polled job state to the entry.

        Ignored when the entry has since moved on to a different job.
        """
        entry = await self.get_entry()
        if entry is None or entry.job_id != job.id:
            self._logger.info("job_result_stale", job_id=job.id)
            return None

        update: dict = {"job_status": job.status}
        if job.status is JobStatus.SUCCEEDED and job.model_id:
            update["model_id"] = job.model_id
        updated = await self._write(entry.model_copy(update=update))
        self._logger.info(
            "job_reconciled",
            job_id=job.id,
            status=job.status.value,
            model_id=updated.model_id,
        )
        return updated

    async def resolve_model_id(self) -> str:
        """Return the model generation should use right now."""
        if self._cache is not None and _CACHE_KEY in self._cache:
            return self._cache[_CACHE_KEY]

        try:
            entry = await self.get_entry()
        except Exception as exc:
            # Generation must keep working when the state store is down.
            self._logger.warning("registry_read_failed", error=str(exc))
            return self._default_model

        model_id = (entry.serving_model_id if entry else None) or self._default_model
        if self._cache is not None:
            self._cache[_CACHE_KEY] = model_id
        return model_id
