"""Training-set builder: turns qualifying feedback into fine-tuning examples.

Each record becomes one chat example: the fixed forensic-engineering
system instruction, a user prompt asking for the record's section, and
the rated content as the assistant reply.  Output order follows input
order, so the same records always produce byte-identical batches.

Malformed records (no section or no content) are logged and excluded;
one bad record never aborts the batch.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

import structlog

from reporttuner.models.feedback import FeedbackRecord
from reporttuner.models.training import TrainingBatch, TrainingExample
from reporttuner.utils.errors import DataIntegrityError
from reporttuner.utils.logging import get_logger

SYSTEM_INSTRUCTION = (
    "You are an expert forensic engineer generating professional report sections. "
    "Use formal technical language and provide detailed analysis."
)

SECTION_PROMPT_TEMPLATE = 'Generate the "{section}" section for a forensic engineering report.'


def section_prompt(section: str) -> str:
    """Return the user prompt for ``section``."""
    return SECTION_PROMPT_TEMPLATE.format(section=section)


class TrainingSetBuilder:
    """Builds a :class:`TrainingBatch` from a captured set of feedback records."""

    def __init__(self, instruction: str = SYSTEM_INSTRUCTION) -> None:
        self._instruction = instruction
        self._logger: structlog.BoundLogger = get_logger(__name__)

    def to_example(self, record: FeedbackRecord) -> TrainingExample:
        """Convert one record.

        Raises
        ------
        DataIntegrityError
            If the record has no usable section or content.
        """
        section = (record.section or "").strip()
        content = (record.content or "").strip()
        if not section:
            raise DataIntegrityError(message="Feedback record has no section", record_id=record.id)
        if not content:
            raise DataIntegrityError(message="Feedback record has no content", record_id=record.id)

        return TrainingExample(
            source_id=record.id,
            section=section,
            instruction=self._instruction,
            prompt=section_prompt(section),
            completion=content,
        )

    def build(
        self,
        cycle_id: str,
        started_at: datetime,
        records: Iterable[FeedbackRecord],
    ) -> TrainingBatch:
        """Build the batch for ``records``, skipping malformed ones."""
        examples: list[TrainingExample] = []
        excluded: list[str] = []
        seen: set[str] = set()

        for record in records:
            if record.id in seen:
                continue
            seen.add(record.id)
            try:
                examples.append(self.to_example(record))
            except DataIntegrityError as exc:
                excluded.append(record.id)
                self._logger.warning(
                    "record_excluded",
                    cycle_id=cycle_id,
                    feedback_id=record.id,
                    reason=exc.message,
                )

        self._logger.info(
            "training_batch_built",
            cycle_id=cycle_id,
            examples=len(examples),
            excluded=len(excluded),
        )
        return TrainingBatch(
            cycle_id=cycle_id,
            started_at=started_at,
            examples=tuple(examples),
            excluded_ids=tuple(excluded),
        )
