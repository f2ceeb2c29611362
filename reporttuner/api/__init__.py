"""ReportTuner API layer: routes, schemas, and middleware."""

from reporttuner.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from reporttuner.api.routes import router
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

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "ErrorResponse",
    "FeedbackResponse",
    "GenerateSectionRequest",
    "GenerateSectionResponse",
    "HealthResponse",
    "ModelResponse",
    "ReconcileResponse",
    "RetrainingStatusResponse",
]
