"""Retraining orchestrator: runs one feedback-to-fine-tune cycle.

One call to :meth:`RetrainingPipeline.run_cycle` walks the fixed step
sequence under a single-flight lease:

    lease → threshold → build → archive → upload/submit → register → mark

Ordering guarantees:
    - Nothing is submitted unless the batch was archived first.
    - Nothing is marked processed unless the registry write succeeded.
    - Only the ids captured at build time are ever marked.

Progress is written to a :class:`CycleRecord` in the state store before
and after every external step.  With ``resume_incomplete`` enabled, the
next invocation after a crash picks the incomplete record up at its last
completed step and rebuilds the batch from the stored feedback ids, so an
accepted job is never submitted twice.  With it disabled, incomplete
records are ignored and the threshold is simply re-evaluated; a crash
between submission and marking then leads to a second submission of the
same feedback.

Failures before the job is accepted abort the cycle (``FAILED``) and leave
every record unprocessed.  Failures after acceptance leave the record at
its last step so a later run can finish it.  ``run_cycle`` reports every
result as a :class:`CycleOutcome` and does not raise.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import structlog

from reporttuner.interfaces.feedback_store import IFeedbackStore
from reporttuner.interfaces.lease_provider import ILeaseProvider
from reporttuner.interfaces.state_store import IStateStore
from reporttuner.models.cycle import CycleOutcome, CycleRecord, CycleStatus, OutcomeStatus
from reporttuner.models.registry import FineTuneJob, JobStatus
from reporttuner.models.training import TrainingBatch
from reporttuner.services.archival_sink import ArchivalSink
from reporttuner.services.consumption_marker import ConsumptionMarker
from reporttuner.services.job_submitter import FineTuneJobSubmitter
from reporttuner.services.model_registry import ModelRegistry
from reporttuner.services.threshold_trigger import ThresholdTrigger
from reporttuner.services.training_set_builder import TrainingSetBuilder
from reporttuner.utils.errors import ConcurrencyConflict, LeaseLostError
from reporttuner.utils.logging import cycle_context, get_logger

RETRAINING_LEASE = "retraining"


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class RetrainingPipeline:
    """Coordinates the retraining components for one cycle at a time.

    All collaborators are injected; the orchestrator never builds them.
    """

    def __init__(
        self,
        feedback_store: IFeedbackStore,
        state_store: IStateStore,
        lease_provider: ILeaseProvider,
        trigger: ThresholdTrigger,
        builder: TrainingSetBuilder,
        archival_sink: ArchivalSink,
        job_submitter: FineTuneJobSubmitter,
        model_registry: ModelRegistry,
        consumption_marker: ConsumptionMarker,
        lease_ttl_seconds: int = 900,
        resume_incomplete: bool = True,
    ) -> None:
        self._feedback_store = feedback_store
        self._state_store = state_store
        self._lease = lease_provider
        self._trigger = trigger
        self._builder = builder
        self._sink = archival_sink
        self._submitter = job_submitter
        self._registry = model_registry
        self._marker = consumption_marker
        self._lease_ttl = lease_ttl_seconds
        self._resume_incomplete = resume_incomplete
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleOutcome:
        """Run one cycle if the lease is free and the threshold is met."""
        holder = uuid.uuid4().hex
        try:
            await self._acquire(holder)
        except ConcurrencyConflict:
            self._logger.info("cycle_skipped_lease_held", lease=RETRAINING_LEASE)
            return CycleOutcome(
                status=OutcomeStatus.SKIPPED_LEASE_HELD,
                threshold=self._trigger.batch_size,
            )
        except Exception as exc:
            self._logger.error("cycle_failed", step="lease", error=str(exc))
            return CycleOutcome(status=OutcomeStatus.FAILED, error=str(exc))

        try:
            return await self._run_locked(holder)
        except Exception as exc:
            # Store failures outside any step (threshold query, WAL lookup).
            self._logger.error("cycle_failed", step="setup", error=str(exc))
            return CycleOutcome(
                status=OutcomeStatus.FAILED,
                threshold=self._trigger.batch_size,
                error=str(exc),
            )
        finally:
            try:
                await self._lease.release(RETRAINING_LEASE, holder)
            except Exception as exc:
                # The lease expires on its own after its TTL.
                self._logger.warning("lease_release_failed", error=str(exc))

    async def _acquire(self, holder: str) -> None:
        acquired = await self._lease.acquire(RETRAINING_LEASE, holder, self._lease_ttl)
        if not acquired:
            raise ConcurrencyConflict(message=f"Lease '{RETRAINING_LEASE}' is held by another run")

    async def _renew(self, holder: str, step: str) -> None:
        """Extend the lease before ``step``; raise if another run has taken it."""
        renewed = await self._lease.renew(RETRAINING_LEASE, holder, self._lease_ttl)
        if not renewed:
            raise LeaseLostError(message=f"Lease '{RETRAINING_LEASE}' lost before {step}")

    async def _run_locked(self, holder: str) -> CycleOutcome:
        if self._resume_incomplete:
            incomplete = await self._state_store.find_incomplete_cycle()
            if incomplete is not None:
                return await self._resume(incomplete, holder)

        decision = await self._trigger.evaluate()
        if not decision.fired:
            self._logger.info(
                "threshold_not_met",
                qualifying=decision.qualifying_count,
                threshold=decision.batch_size,
            )
            return CycleOutcome(
                status=OutcomeStatus.THRESHOLD_NOT_MET,
                qualifying_count=decision.qualifying_count,
                threshold=decision.batch_size,
            )

        cycle_id = uuid.uuid4().hex
        started_at = _utcnow()
        with cycle_context(cycle_id):
            self._logger.info(
                "cycle_started",
                qualifying=decision.qualifying_count,
                threshold=decision.batch_size,
            )

            batch = self._builder.build(cycle_id, started_at, decision.qualifying)
            if batch.size == 0:
                error = "No valid training examples in qualifying feedback"
                self._logger.error("cycle_failed", step="build", error=error)
                return CycleOutcome(
                    status=OutcomeStatus.FAILED,
                    cycle_id=cycle_id,
                    qualifying_count=decision.qualifying_count,
                    threshold=decision.batch_size,
                    excluded_ids=list(batch.excluded_ids),
                    error=error,
                )

            cycle = CycleRecord(
                cycle_id=cycle_id,
                feedback_ids=batch.feedback_ids,
                created_at=started_at,
                updated_at=started_at,
            )
            await self._state_store.save_cycle(cycle)
            return await self._drive(
                cycle,
                batch,
                holder,
                qualifying_count=decision.qualifying_count,
                resumed=False,
            )

    async def _resume(self, cycle: CycleRecord, holder: str) -> CycleOutcome:
        with cycle_context(cycle.cycle_id):
            self._logger.info(
                "cycle_resumed",
                status=cycle.status.value,
                records=len(cycle.feedback_ids),
            )
            batch = TrainingBatch(cycle_id=cycle.cycle_id, started_at=cycle.created_at)
            if not cycle.reached(CycleStatus.SUBMITTED) and cycle.file_id is None:
                # The batch is still needed for archival or upload.
                records = await self._feedback_store.get_by_ids(cycle.feedback_ids)
                batch = self._builder.build(cycle.cycle_id, cycle.created_at, records)
            return await self._drive(
                cycle,
                batch,
                holder,
                qualifying_count=len(cycle.feedback_ids),
                resumed=True,
            )

    # ------------------------------------------------------------------
    # Step sequence
    # ------------------------------------------------------------------

    async def _drive(
        self,
        cycle: CycleRecord,
        batch: TrainingBatch,
        holder: str,
        *,
        qualifying_count: int,
        resumed: bool,
    ) -> CycleOutcome:
        # The lease is renewed before every step and every checkpoint, so a
        # run that overran its TTL stops before touching the provider or
        # the cycle record again.
        marked = 0
        try:
            if not cycle.reached(CycleStatus.ARCHIVED):
                await self._renew(holder, "archive")
                key = await self._sink.archive(batch)
                cycle = await self._save(
                    cycle.advance(CycleStatus.ARCHIVED, archive_key=key), holder
                )

            if not cycle.reached(CycleStatus.SUBMITTED):
                if cycle.file_id is None:
                    await self._renew(holder, "upload")
                    file_id = await self._submitter.upload(batch.to_jsonl(), cycle_id=cycle.cycle_id)
                    cycle = await self._save(
                        cycle.model_copy(update={"file_id": file_id, "updated_at": _utcnow()}),
                        holder,
                    )
                await self._renew(holder, "submit")
                job = await self._submitter.create_job(cycle.file_id, cycle_id=cycle.cycle_id)
                cycle = await self._save(
                    cycle.advance(CycleStatus.SUBMITTED, job_id=job.id, model_id=job.model_id),
                    holder,
                )

            if not cycle.reached(CycleStatus.REGISTERED):
                await self._renew(holder, "register")
                job = FineTuneJob(
                    id=cycle.job_id,
                    status=JobStatus.SUCCEEDED if cycle.model_id else JobStatus.QUEUED,
                    model_id=cycle.model_id,
                    base_model=self._submitter.base_model,
                )
                await self._registry.record_submission(
                    job,
                    cycle_id=cycle.cycle_id,
                    training_size=len(cycle.feedback_ids),
                    base_model=self._submitter.base_model,
                )
                cycle = await self._save(cycle.advance(CycleStatus.REGISTERED), holder)

            if not cycle.reached(CycleStatus.MARKED):
                await self._renew(holder, "mark")
                marked = await self._marker.mark(cycle.feedback_ids, cycle.cycle_id)
                cycle = await self._save(cycle.advance(CycleStatus.MARKED), holder)
        except LeaseLostError as exc:
            return self._abandon(cycle, batch, exc, qualifying_count, resumed)
        except Exception as exc:
            return await self._fail(cycle, batch, exc, qualifying_count, resumed, holder)

        self._logger.info(
            "cycle_completed",
            job_id=cycle.job_id,
            archive_key=cycle.archive_key,
            marked=marked,
            resumed=resumed,
        )
        return CycleOutcome(
            status=OutcomeStatus.COMPLETED,
            cycle_id=cycle.cycle_id,
            qualifying_count=qualifying_count,
            threshold=self._trigger.batch_size,
            batch_size=len(cycle.feedback_ids),
            excluded_ids=list(batch.excluded_ids),
            archive_key=cycle.archive_key,
            job_id=cycle.job_id,
            model_id=cycle.model_id,
            marked_count=marked,
            resumed=resumed,
        )

    async def _save(self, cycle: CycleRecord, holder: str) -> CycleRecord:
        await self._renew(holder, f"checkpoint {cycle.status.value}")
        await self._state_store.save_cycle(cycle)
        return cycle

    def _abandon(
        self,
        cycle: CycleRecord,
        batch: TrainingBatch,
        exc: LeaseLostError,
        qualifying_count: int,
        resumed: bool,
    ) -> CycleOutcome:
        """Stop without writing: the cycle record now belongs to the new lease holder."""
        self._logger.error(
            "cycle_lease_lost",
            step=cycle.status.value,
            error=str(exc),
            lease_ttl_s=self._lease_ttl,
        )
        return CycleOutcome(
            status=OutcomeStatus.FAILED,
            cycle_id=cycle.cycle_id,
            qualifying_count=qualifying_count,
            threshold=self._trigger.batch_size,
            batch_size=len(cycle.feedback_ids),
            excluded_ids=list(batch.excluded_ids),
            archive_key=cycle.archive_key,
            job_id=cycle.job_id,
            model_id=cycle.model_id,
            resumed=resumed,
            error=str(exc),
        )

    async def _fail(
        self,
        cycle: CycleRecord,
        batch: TrainingBatch,
        exc: Exception,
        qualifying_count: int,
        resumed: bool,
        holder: str,
    ) -> CycleOutcome:
        submitted = cycle.reached(CycleStatus.SUBMITTED)
        self._logger.error(
            "cycle_failed",
            step=cycle.status.value,
            error=str(exc),
            error_type=type(exc).__name__,
            resumable=submitted,
        )
        if not submitted:
            try:
                cycle = await self._save(cycle.advance(CycleStatus.FAILED, error=str(exc)), holder)
            except Exception as save_exc:
                self._logger.warning("cycle_record_save_failed", error=str(save_exc))
        return CycleOutcome(
            status=OutcomeStatus.FAILED,
            cycle_id=cycle.cycle_id,
            qualifying_count=qualifying_count,
            threshold=self._trigger.batch_size,
            batch_size=len(cycle.feedback_ids),
            excluded_ids=list(batch.excluded_ids),
            archive_key=cycle.archive_key,
            job_id=cycle.job_id,
            model_id=cycle.model_id,
            resumed=resumed,
            error=str(exc),
        )
