"""Public interface definitions for every external collaborator.

The retraining pipeline talks to storage and providers only through the
abstract base classes in this package.  Concrete adapters live in
``reporttuner/providers/`` and are constructed once in
``reporttuner/main.py`` then injected, so tests can substitute fakes.

CONCRETE PROVIDER MAP:
    Interface             →  Concrete implementations
    ─────────────────────────────────────────────────────────────────
    IFeedbackStore        →  SQLiteFeedbackStore
    IStateStore           →  SQLiteStateStore
    ILeaseProvider        →  SQLiteLeaseProvider
    IBlobStore            →  FilesystemBlobStore, GCSBlobStore
    IFineTuneProvider     →  OpenAIFineTuneProvider
    ILLMProvider          →  OpenAILLMProvider
"""

from reporttuner.interfaces.blob_store import IBlobStore
from reporttuner.interfaces.feedback_store import IFeedbackStore
from reporttuner.interfaces.fine_tune_provider import IFineTuneProvider
from reporttuner.interfaces.lease_provider import ILeaseProvider
from reporttuner.interfaces.llm_provider import ILLMProvider
from reporttuner.interfaces.state_store import IStateStore

__all__ = [
    "IBlobStore",
    "IFeedbackStore",
    "IFineTuneProvider",
    "ILLMProvider",
    "ILeaseProvider",
    "IStateStore",
]
