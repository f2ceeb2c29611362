"""Training-set models: provider-format examples and the archived batch.

``TrainingExample`` is ephemeral: it exists only while a batch is built
and serialized.  ``TrainingBatch`` is immutable once built and is the
unit that gets archived and uploaded, one JSON object per line.
"""

from __future__ import annotations

import json
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class TrainingExample(BaseModel):
    """One chat-format fine-tuning example derived from one feedback record."""

    model_config = ConfigDict(frozen=True)

    source_id: str
    section: str
    instruction: str
    prompt: str
    completion: str

    def to_provider_format(self) -> dict:
        """Return the chat-messages shape the fine-tune provider expects."""
        return {
            "messages": [
                {"role": "system", "content": self.instruction},
                {"role": "user", "content": self.prompt},
                {"role": "assistant", "content": self.completion},
            ]
        }


class TrainingBatch(BaseModel):
    """An ordered, timestamp-keyed set of training examples."""

    model_config = ConfigDict(frozen=True)

    cycle_id: str
    started_at: datetime
    examples: tuple[TrainingExample, ...] = Field(default_factory=tuple)
    # Ids that were captured at trigger time but excluded as malformed.
    excluded_ids: tuple[str, ...] = Field(default_factory=tuple)

    @property
    def size(self) -> int:
        return len(self.examples)

    @property
    def feedback_ids(self) -> tuple[str, ...]:
        """Ids of the records that produced an example, in batch order."""
        return tuple(example.source_id for example in self.examples)

    def to_jsonl(self) -> bytes:
        """Serialize the batch as line-delimited JSON (UTF-8, trailing newline)."""
        lines = [
            json.dumps(example.to_provider_format(), ensure_ascii=False)
            for example in self.examples
        ]
        return ("\n".join(lines) + "\n").encode("utf-8") if lines else b""
