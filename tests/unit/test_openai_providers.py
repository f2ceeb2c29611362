"""Unit tests for the OpenAI fine-tune and LLM adapters."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from reporttuner.config.settings import Settings
from reporttuner.models.registry import JobStatus
from reporttuner.providers.fine_tune.openai_fine_tune_provider import OpenAIFineTuneProvider
from reporttuner.providers.llm.openai_provider import OpenAILLMProvider
from reporttuner.utils.errors import LLMError, ProviderRejection, TransientIOError

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/fine_tuning/jobs")


def _settings(**overrides) -> Settings:
    defaults = {"openai_api_key": "sk-test", "openai_base_url": "", "_env_file": None}
    defaults.update(overrides)
    return Settings(**defaults)


def _status_error(cls: type, status: int, body: dict | None = None) -> openai.APIStatusError:
    response = httpx.Response(status, request=_REQUEST)
    return cls("error", response=response, body=body)


def _raw_job(status: str = "queued", fine_tuned_model: str | None = None) -> SimpleNamespace:
    return SimpleNamespace(
        id="ftjob-1",
        status=status,
        fine_tuned_model=fine_tuned_model,
        model="gpt-3.5-turbo",
        training_file="file-1",
    )


def _client() -> MagicMock:
    client = MagicMock()
    client.files.create = AsyncMock(return_value=SimpleNamespace(id="file-1"))
    client.fine_tuning.jobs.create = AsyncMock(return_value=_raw_job())
    client.fine_tuning.jobs.retrieve = AsyncMock(return_value=_raw_job("running"))
    return client


# ======================================================================
# Fine-tune provider
# ======================================================================


class TestOpenAIFineTuneProvider:
    def test_requires_settings_or_client(self) -> None:
        with pytest.raises(ValueError):
            OpenAIFineTuneProvider()

    def test_builds_client_from_settings(self) -> None:
        provider = OpenAIFineTuneProvider(settings=_settings())
        assert provider.get_provider_name() == "openai"
        assert provider.is_available() is True

    async def test_without_key_is_unavailable_and_rejects_calls(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        provider = OpenAIFineTuneProvider(settings=_settings(openai_api_key=""))
        assert provider.is_available() is False
        with pytest.raises(ProviderRejection, match="OPENAI_API_KEY"):
            await provider.upload(b"{}\n")
        with pytest.raises(ProviderRejection):
            await provider.retrieve_job("ftjob-1")

    async def test_upload_returns_file_id(self) -> None:
        client = _client()
        provider = OpenAIFineTuneProvider(client=client)
        assert await provider.upload(b"{}\n") == "file-1"
        kwargs = client.files.create.call_args.kwargs
        assert kwargs["purpose"] == "fine-tune"
        assert kwargs["file"][1] == b"{}\n"

    async def test_create_job_normalizes_status(self) -> None:
        client = _client()
        provider = OpenAIFineTuneProvider(client=client)
        job = await provider.create_job("gpt-3.5-turbo", "file-1")
        assert job.id == "ftjob-1"
        assert job.status is JobStatus.QUEUED
        assert job.model_id is None
        client.fine_tuning.jobs.create.assert_awaited_once_with(
            model="gpt-3.5-turbo", training_file="file-1"
        )

    @pytest.mark.parametrize(
        ("raw_status", "expected"),
        [
            ("validating_files", JobStatus.QUEUED),
            ("running", JobStatus.RUNNING),
            ("succeeded", JobStatus.SUCCEEDED),
            ("cancelled", JobStatus.FAILED),
        ],
    )
    async def test_retrieve_job_status_map(self, raw_status: str, expected: JobStatus) -> None:
        client = _client()
        client.fine_tuning.jobs.retrieve = AsyncMock(
            return_value=_raw_job(raw_status, "ft:gpt-3.5-turbo:acme::1" if raw_status == "succeeded" else None)
        )
        job = await OpenAIFineTuneProvider(client=client).retrieve_job("ftjob-1")
        assert job.status is expected
        assert job.provider_status == raw_status

    @pytest.mark.parametrize(
        "error",
        [
            openai.APIConnectionError(request=_REQUEST),
            openai.APITimeoutError(request=_REQUEST),
            _status_error(openai.RateLimitError, 429, {"error": {"code": "rate_limit_exceeded"}}),
            _status_error(openai.InternalServerError, 500),
        ],
    )
    async def test_transient_errors(self, error: Exception) -> None:
        client = _client()
        client.fine_tuning.jobs.create = AsyncMock(side_effect=error)
        with pytest.raises(TransientIOError):
            await OpenAIFineTuneProvider(client=client).create_job("gpt-3.5-turbo", "file-1")

    @pytest.mark.parametrize(
        "error",
        [
            _status_error(openai.BadRequestError, 400),
            _status_error(openai.AuthenticationError, 401),
            _status_error(openai.RateLimitError, 429, {"error": {"code": "insufficient_quota"}}),
        ],
    )
    async def test_rejections(self, error: Exception) -> None:
        client = _client()
        client.files.create = AsyncMock(side_effect=error)
        with pytest.raises(ProviderRejection):
            await OpenAIFineTuneProvider(client=client).upload(b"{}\n")


# ======================================================================
# LLM provider
# ======================================================================


class TestOpenAILLMProvider:
    def test_is_available_with_key(self) -> None:
        assert OpenAILLMProvider(_settings()).is_available() is True

    def test_is_available_without_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        assert OpenAILLMProvider(_settings(openai_api_key="")).is_available() is False

    async def test_complete_without_key_raises_llm_error(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        provider = OpenAILLMProvider(_settings(openai_api_key=""))
        with pytest.raises(LLMError, match="OPENAI_API_KEY"):
            await provider.complete("system", "user", model="gpt-3.5-turbo")

    def test_compatible_label(self) -> None:
        provider = OpenAILLMProvider(_settings(openai_base_url="http://localhost:8080/v1"))
        assert provider.get_provider_name() == "openai-compatible"

    async def test_complete_passes_model_and_prompts(self) -> None:
        client = MagicMock()
        response = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="Section text"))],
            usage=SimpleNamespace(total_tokens=42),
        )
        client.chat.completions.create = AsyncMock(return_value=response)
        provider = OpenAILLMProvider(_settings(), client=client)

        result = await provider.complete("system", "user", model="ft:abc", temperature=0.7, max_tokens=1000)

        assert result == "Section text"
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "ft:abc"
        assert kwargs["messages"][0] == {"role": "system", "content": "system"}
        assert kwargs["max_tokens"] == 1000

    async def test_empty_response_raises(self) -> None:
        client = MagicMock()
        response = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=None))], usage=None
        )
        client.chat.completions.create = AsyncMock(return_value=response)
        with pytest.raises(LLMError):
            await OpenAILLMProvider(_settings(), client=client).complete("s", "u", model="m")

    async def test_api_error_raises(self) -> None:
        client = MagicMock()
        client.chat.completions.create = AsyncMock(
            side_effect=openai.APIConnectionError(request=_REQUEST)
        )
        with pytest.raises(LLMError):
            await OpenAILLMProvider(_settings(), client=client).complete("s", "u", model="m")
