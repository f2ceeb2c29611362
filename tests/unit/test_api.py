"""Tests for the REST endpoints, using a minimal app with mocked state."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from reporttuner.api.middleware import ErrorHandlingMiddleware
from reporttuner.api.routes import router as api_router
from reporttuner.config.settings import Settings
from reporttuner.main import create_app
from reporttuner.models.cycle import CycleOutcome, OutcomeStatus
from reporttuner.models.feedback import FeedbackRecord
from reporttuner.models.registry import FineTuneJob, JobStatus, ModelRegistryEntry
from reporttuner.utils.errors import LLMError, TransientIOError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _settings(**overrides) -> Settings:
    defaults = {"openai_api_key": "sk-test", "_env_file": None}
    defaults.update(overrides)
    return Settings(**defaults)


def _create_test_app(**state: object) -> FastAPI:
    """Build a minimal FastAPI app with mocked state for testing."""
    app = FastAPI()
    app.add_middleware(ErrorHandlingMiddleware)
    app.include_router(api_router)

    ingestion = AsyncMock()
    ingestion.submit = AsyncMock(
        return_value=FeedbackRecord(
            id="fb-1",
            section="Findings",
            content="Text",
            rating=7,
            created_at=datetime(2026, 10, 19, tzinfo=timezone.utc),
        )
    )
    pipeline = AsyncMock()
    pipeline.run_cycle = AsyncMock(
        return_value=CycleOutcome(status=OutcomeStatus.THRESHOLD_NOT_MET, qualifying_count=3, threshold=10)
    )
    registry = AsyncMock()
    registry.get_entry = AsyncMock(return_value=None)
    registry.resolve_model_id = AsyncMock(return_value="gpt-3.5-turbo")
    trigger = MagicMock()
    trigger.pending_count = AsyncMock(return_value=3)
    trigger.batch_size = 10
    trigger.min_rating = 6
    state_store = AsyncMock()
    state_store.list_cycles = AsyncMock(return_value=[])

    defaults: dict[str, object] = {
        "settings": _settings(retrain_on_ingest=True),
        "ingestion_service": ingestion,
        "generation_service": AsyncMock(),
        "pipeline": pipeline,
        "reconciler": AsyncMock(),
        "model_registry": registry,
        "trigger": trigger,
        "state_store": state_store,
        "provider_registry": {"llm": True, "fine_tune": True},
    }
    defaults.update(state)
    for key, value in defaults.items():
        setattr(app.state, key, value)
    return app


_VALID_FEEDBACK = {"section": "Findings", "content": "The beam failed.", "rating": 7}


# ---------------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------------


class TestSubmitFeedbackEndpoint:
    def test_stores_and_schedules_cycle(self) -> None:
        app = _create_test_app()
        client = TestClient(app)

        resp = client.post("/api/v1/feedback", json=_VALID_FEEDBACK)

        assert resp.status_code == 201
        data = resp.json()
        assert data["success"] is True
        assert data["id"] == "fb-1"
        assert data["retraining_scheduled"] is True
        app.state.ingestion_service.submit.assert_awaited_once()
        app.state.pipeline.run_cycle.assert_awaited_once()

    def test_no_cycle_when_disabled(self) -> None:
        app = _create_test_app(settings=_settings(retrain_on_ingest=False))
        resp = TestClient(app).post("/api/v1/feedback", json=_VALID_FEEDBACK)
        assert resp.status_code == 201
        assert resp.json()["retraining_scheduled"] is False
        app.state.pipeline.run_cycle.assert_not_awaited()

    def test_unknown_field_rejected(self) -> None:
        app = _create_test_app()
        resp = TestClient(app).post("/api/v1/feedback", json={**_VALID_FEEDBACK, "processed": True})
        assert resp.status_code == 422
        app.state.ingestion_service.submit.assert_not_awaited()

    def test_rating_out_of_range_rejected(self) -> None:
        app = _create_test_app()
        resp = TestClient(app).post("/api/v1/feedback", json={**_VALID_FEEDBACK, "rating": 9})
        assert resp.status_code == 422

    def test_store_failure_is_503(self) -> None:
        ingestion = AsyncMock()
        ingestion.submit = AsyncMock(
            side_effect=TransientIOError(message="Could not store feedback: /srv/data/feedback.db is locked")
        )
        app = _create_test_app(ingestion_service=ingestion)

        resp = TestClient(app).post("/api/v1/feedback", json=_VALID_FEEDBACK)

        assert resp.status_code == 503
        assert resp.json()["error"] == "TransientIOError"
        assert resp.json()["detail"] == "Service temporarily unavailable"
        assert "feedback.db" not in resp.text
        app.state.pipeline.run_cycle.assert_not_awaited()


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


class TestGenerateSectionEndpoint:
    def test_returns_content_and_model(self) -> None:
        generation = AsyncMock()
        generation.generate = AsyncMock(return_value=("Draft", "ft:model"))
        app = _create_test_app(generation_service=generation)

        resp = TestClient(app).post(
            "/api/v1/sections/generate", json={"section": "Findings", "context": {"site": "A"}}
        )

        assert resp.status_code == 200
        assert resp.json() == {"section": "Findings", "content": "Draft", "model": "ft:model"}
        generation.generate.assert_awaited_once_with("Findings", {"site": "A"})

    def test_llm_failure_is_generic_500(self) -> None:
        generation = AsyncMock()
        generation.generate = AsyncMock(side_effect=LLMError(message="secret detail"))
        app = _create_test_app(generation_service=generation)

        resp = TestClient(app).post("/api/v1/sections/generate", json={"section": "Findings"})

        assert resp.status_code == 500
        assert resp.json()["detail"] == "Failed to generate report section"


# ---------------------------------------------------------------------------
# Retraining
# ---------------------------------------------------------------------------


class TestRetrainingEndpoints:
    def test_run_returns_outcome(self) -> None:
        app = _create_test_app()
        resp = TestClient(app).post("/api/v1/retraining/run")
        assert resp.status_code == 200
        assert resp.json()["status"] == "threshold_not_met"
        assert resp.json()["qualifying_count"] == 3

    def test_lease_held_is_not_an_error(self) -> None:
        pipeline = AsyncMock()
        pipeline.run_cycle = AsyncMock(return_value=CycleOutcome(status=OutcomeStatus.SKIPPED_LEASE_HELD))
        app = _create_test_app(pipeline=pipeline)
        resp = TestClient(app).post("/api/v1/retraining/run")
        assert resp.status_code == 200
        assert resp.json()["status"] == "skipped_lease_held"

    def test_status(self) -> None:
        app = _create_test_app()
        resp = TestClient(app).get("/api/v1/retraining/status")
        assert resp.status_code == 200
        assert resp.json() == {
            "qualifying_count": 3,
            "threshold": 10,
            "min_rating": 6,
            "registry": None,
            "recent_cycles": [],
        }

    def test_reconcile(self) -> None:
        reconciler = AsyncMock()
        reconciler.reconcile_once = AsyncMock(
            return_value=FineTuneJob(id="j1", status=JobStatus.SUCCEEDED, model_id="ft:new")
        )
        app = _create_test_app(reconciler=reconciler)
        resp = TestClient(app).post("/api/v1/retraining/reconcile")
        assert resp.status_code == 200
        assert resp.json()["polled"] is True
        assert resp.json()["job"]["model_id"] == "ft:new"

    def test_model_default(self) -> None:
        resp = TestClient(_create_test_app()).get("/api/v1/model")
        assert resp.json()["model_id"] == "gpt-3.5-turbo"
        assert resp.json()["is_default"] is True

    def test_model_fine_tuned(self) -> None:
        registry = AsyncMock()
        registry.resolve_model_id = AsyncMock(return_value="ft:x")
        registry.get_entry = AsyncMock(return_value=ModelRegistryEntry(model_id="ft:x", job_id="j1"))
        resp = TestClient(_create_test_app(model_registry=registry)).get("/api/v1/model")
        assert resp.json()["model_id"] == "ft:x"
        assert resp.json()["is_default"] is False


class TestHealthEndpoint:
    def test_healthy(self) -> None:
        resp = TestClient(_create_test_app()).get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    def test_degraded_without_credentials(self) -> None:
        app = _create_test_app(provider_registry={"llm": False, "fine_tune": False})
        assert TestClient(app).get("/api/v1/health").json()["status"] == "degraded"


class TestCreateApp:
    def test_lifespan_wires_real_components(self, tmp_path: Path) -> None:
        settings = _settings(
            feedback_db_path=str(tmp_path / "feedback.db"),
            state_db_path=str(tmp_path / "state.db"),
            blob_dir=str(tmp_path / "blobs"),
            retrain_on_ingest=False,
        )
        with TestClient(create_app(settings)) as client:
            resp = client.post("/api/v1/feedback", json=_VALID_FEEDBACK)
            assert resp.status_code == 201

            status = client.get("/api/v1/retraining/status").json()
            assert status["qualifying_count"] == 1
            assert status["threshold"] == 10

            run = client.post("/api/v1/retraining/run").json()
            assert run["status"] == "threshold_not_met"

    def test_starts_degraded_without_api_key(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        settings = _settings(
            openai_api_key="",
            feedback_db_path=str(tmp_path / "feedback.db"),
            state_db_path=str(tmp_path / "state.db"),
            blob_dir=str(tmp_path / "blobs"),
            retrain_on_ingest=False,
        )
        with TestClient(create_app(settings)) as client:
            health = client.get("/api/v1/health").json()
            assert health["status"] == "degraded"
            assert health["providers"]["llm"] is False
            assert health["providers"]["fine_tune"] is False

            assert client.post("/api/v1/feedback", json=_VALID_FEEDBACK).status_code == 201
            resp = client.post("/api/v1/sections/generate", json={"section": "Findings"})
            assert resp.status_code == 500
            assert resp.json()["detail"] == "Failed to generate report section"

    def test_sqlite_failure_on_insert_is_503_without_internals(self, tmp_path: Path) -> None:
        db_path = tmp_path / "feedback.db"
        settings = _settings(
            feedback_db_path=str(db_path),
            state_db_path=str(tmp_path / "state.db"),
            blob_dir=str(tmp_path / "blobs"),
            retrain_on_ingest=False,
        )
        with TestClient(create_app(settings)) as client:
            with sqlite3.connect(db_path) as conn:
                conn.execute("DROP TABLE feedback")

            resp = client.post("/api/v1/feedback", json=_VALID_FEEDBACK)

            assert resp.status_code == 503
            assert resp.json() == {
                "error": "TransientIOError",
                "detail": "Service temporarily unavailable",
            }
