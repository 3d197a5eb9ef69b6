"""Tests for rangetrack.core.llm — local and cloud completion.

No network: httpx.AsyncClient and the provider functions are mocked.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from rangetrack.config import settings
from rangetrack.core import llm


@pytest.fixture(autouse=True)
def reset_provider():
    llm._provider_fn = None
    yield
    llm._provider_fn = None


def _mock_http(payload=None, error=None):
    """Patch httpx.AsyncClient so post() returns `payload` as JSON or raises `error`."""
    resp = MagicMock()
    resp.json.return_value = payload or {}
    client = MagicMock()
    client.post = AsyncMock(return_value=resp, side_effect=error)
    patcher = patch("rangetrack.core.llm.httpx.AsyncClient")
    mock_cls = patcher.start()
    mock_cls.return_value.__aenter__.return_value = client
    return patcher, mock_cls, client


class TestCompleteLocal:
    @pytest.mark.asyncio
    async def test_posts_generate_request(self):
        patcher, mock_cls, client = _mock_http({"response": "  Rotate the herd.  "})
        try:
            text = await llm.complete_local("SYSTEM", "When do I move cattle?", max_tokens=200)
        finally:
            patcher.stop()

        assert text == "Rotate the herd."
        mock_cls.assert_called_once_with(timeout=settings.LLM_TIMEOUT_SECONDS)
        url = client.post.call_args.args[0]
        payload = client.post.call_args.kwargs["json"]
        assert url.endswith("/api/generate")
        assert payload["model"] == settings.OLLAMA_MODEL
        assert payload["stream"] is False
        assert payload["prompt"] == "SYSTEM\n\nUser: When do I move cattle?\nFarmAI:"
        assert payload["options"] == {"temperature": 0.7, "num_predict": 200}

    @pytest.mark.asyncio
    async def test_empty_response_raises(self):
        patcher, _, _ = _mock_http({"response": "   "})
        try:
            with pytest.raises(ValueError, match="empty"):
                await llm.complete_local("SYSTEM", "hi")
        finally:
            patcher.stop()

    @pytest.mark.asyncio
    async def test_connection_error_propagates(self):
        patcher, _, _ = _mock_http(error=httpx.ConnectError("refused"))
        try:
            with pytest.raises(httpx.ConnectError):
                await llm.complete_local("SYSTEM", "hi")
        finally:
            patcher.stop()


class TestComplete:
    @pytest.mark.asyncio
    async def test_no_key_raises_unavailable(self):
        with patch.object(settings, "LLM_API_KEY", ""):
            assert llm.cloud_enabled() is False
            with pytest.raises(llm.LLMUnavailableError):
                await llm.complete("SYSTEM", "hi")

    @pytest.mark.asyncio
    async def test_routes_to_configured_provider(self):
        fake = AsyncMock(return_value="Cloud says hi")
        with patch.dict(llm._PROVIDERS, {"openrouter": (fake, "default-model")}), \
             patch.object(settings, "LLM_MODEL", ""):
            result = await llm.complete("SYSTEM", "hi")

        assert result == "Cloud says hi"
        fake.assert_awaited_once_with(settings.LLM_API_KEY, "default-model", "SYSTEM", "hi", 500)

    @pytest.mark.asyncio
    async def test_model_override(self):
        fake = AsyncMock(return_value="ok")
        with patch.dict(llm._PROVIDERS, {"openrouter": (fake, "default-model")}), \
             patch.object(settings, "LLM_MODEL", "custom/model"):
            await llm.complete("SYSTEM", "hi", max_tokens=50)

        assert fake.call_args.args[1] == "custom/model"
        assert fake.call_args.args[4] == 50

    @pytest.mark.asyncio
    async def test_provider_errors_propagate(self):
        fake = AsyncMock(side_effect=RuntimeError("rate limited"))
        with patch.dict(llm._PROVIDERS, {"openrouter": (fake, "default-model")}):
            with pytest.raises(RuntimeError, match="rate limited"):
                await llm.complete("SYSTEM", "hi")


class TestSelectProvider:
    def test_unknown_provider(self):
        with patch.object(settings, "LLM_PROVIDER", "mystery"):
            with pytest.raises(ValueError, match="Unknown LLM_PROVIDER"):
                llm._select_provider()

    def test_provider_name_is_case_insensitive(self):
        with patch.object(settings, "LLM_PROVIDER", "Anthropic"), \
             patch.object(settings, "LLM_MODEL", ""):
            fn, model, _ = llm._select_provider()
        assert fn is llm._complete_anthropic
        assert model == "claude-haiku-4-5-20251001"
