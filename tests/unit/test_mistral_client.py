"""
Unit tests for the Mistral HTTP decision provider.
"""

import json

import httpx
import pytest
import pytest_asyncio

from nemesis.agents.dispatcher import DispatchStatus, OrchestratorDispatcher
from nemesis.agents.provider import DecisionProvider, ProviderError
from nemesis.integrations.mistral_client import MistralProvider

API_URL = "https://mistral.test/v1/chat/completions"


def completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def build_provider(handler, api_key="secret", retry_attempts=3):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MistralProvider(
        api_key=api_key,
        api_url=API_URL,
        model="mistral-small-latest",
        retry_attempts=retry_attempts,
        backoff_base=0,
        client=client,
    )


@pytest_asyncio.fixture
async def recorded():
    """Provider that records requests and answers with a fixed completion."""
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json=completion('{"agent": "exam"}'))

    provider = build_provider(handler)
    yield provider, requests
    await provider.close()


class TestMistralProvider:
    """Tests for MistralProvider."""

    def test_satisfies_protocol(self):
        assert isinstance(MistralProvider(api_key="k"), DecisionProvider)

    @pytest.mark.asyncio
    async def test_request_shape(self, recorded):
        provider, requests = recorded

        text = await provider.complete("You are the ORCHESTRATOR.", "Student ADA: hi", 321)

        assert text == '{"agent": "exam"}'
        request = requests[0]
        assert str(request.url) == API_URL
        assert request.headers["Authorization"] == "Bearer secret"
        body = json.loads(request.content)
        assert body["model"] == "mistral-small-latest"
        assert body["max_tokens"] == 321
        assert body["messages"] == [
            {"role": "system", "content": "You are the ORCHESTRATOR."},
            {"role": "user", "content": "Student ADA: hi"},
        ]

    @pytest.mark.asyncio
    async def test_missing_key_fails_without_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=completion("x"))

        provider = build_provider(handler, api_key=None)
        with pytest.raises(ProviderError):
            await provider.complete("role", "context")
        assert calls == []
        assert not provider.is_available

    @pytest.mark.asyncio
    async def test_server_error_retried(self):
        attempts = 0

        def handler(request):
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                return httpx.Response(503, json={"message": "overloaded"})
            return httpx.Response(200, json=completion("ok"))

        provider = build_provider(handler)
        assert await provider.complete("role", "context") == "ok"
        assert attempts == 3

    @pytest.mark.asyncio
    async def test_timeout_retried_then_exhausted(self):
        attempts = 0

        def handler(request):
            nonlocal attempts
            attempts += 1
            raise httpx.ReadTimeout("slow", request=request)

        provider = build_provider(handler, retry_attempts=2)
        with pytest.raises(ProviderError, match="after 2 attempts"):
            await provider.complete("role", "context")
        assert attempts == 2

    @pytest.mark.asyncio
    async def test_network_error_retried(self):
        attempts = 0

        def handler(request):
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json=completion("back"))

        provider = build_provider(handler)
        assert await provider.complete("role", "context") == "back"

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        attempts = 0

        def handler(request):
            nonlocal attempts
            attempts += 1
            return httpx.Response(401, json={"message": "Unauthorized"})

        provider = build_provider(handler)
        with pytest.raises(ProviderError, match="401"):
            await provider.complete("role", "context")
        assert attempts == 1

    @pytest.mark.asyncio
    async def test_error_body_raises(self):
        provider = build_provider(
            lambda request: httpx.Response(200, json={"error": {"message": "model not found"}})
        )
        with pytest.raises(ProviderError, match="model not found"):
            await provider.complete("role", "context")

    @pytest.mark.asyncio
    async def test_missing_choices_is_empty_text(self):
        provider = build_provider(lambda request: httpx.Response(200, json={"choices": []}))
        assert await provider.complete("role", "context") == ""

    @pytest.mark.asyncio
    async def test_non_json_body_raises(self):
        provider = build_provider(lambda request: httpx.Response(200, text="<html>proxy</html>"))
        with pytest.raises(ProviderError):
            await provider.complete("role", "context")

    @pytest.mark.asyncio
    async def test_malformed_choices_raise_provider_error(self):
        provider = build_provider(lambda request: httpx.Response(200, json={"choices": ["oops"]}))
        with pytest.raises(ProviderError, match="malformed choices"):
            await provider.complete("role", "context")

    @pytest.mark.asyncio
    async def test_malformed_message_raises_provider_error(self):
        provider = build_provider(lambda request: httpx.Response(200, json={"choices": [{"message": "hi"}]}))
        with pytest.raises(ProviderError):
            await provider.complete("role", "context")

    @pytest.mark.asyncio
    async def test_chunked_content_is_joined(self):
        body = completion([
            {"type": "text", "text": '{"agent": '},
            {"type": "reference", "reference_ids": [1]},
            {"type": "text", "text": '"exam"}'},
        ])
        provider = build_provider(lambda request: httpx.Response(200, json=body))
        assert await provider.complete("role", "context") == '{"agent": "exam"}'

    @pytest.mark.asyncio
    async def test_unexpected_content_type_raises(self):
        provider = build_provider(lambda request: httpx.Response(200, json=completion(42)))
        with pytest.raises(ProviderError):
            await provider.complete("role", "context")

    def test_from_settings(self, settings):
        provider = MistralProvider.from_settings(settings)

        assert provider.api_key == "test-key"
        assert provider.model == settings.ai_model
        assert provider.timeout_seconds == 60.0
        assert provider.retry_attempts == 3


class TestMalformedBodiesInDispatch:
    """Malformed service bodies end as NO_DECISION, never as a crash."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"choices": ["oops"]},
            {"choices": [{"message": ["not", "a", "dict"]}]},
            completion({"agent": "exam"}),
        ],
    )
    async def test_dispatch_reports_no_decision(self, body, store, settings):
        provider = build_provider(lambda request: httpx.Response(200, json=body), retry_attempts=1)
        dispatcher = OrchestratorDispatcher(store, provider, settings)
        before = store.state

        result = await dispatcher.dispatch("help me")
        await provider.close()

        assert result.status is DispatchStatus.NO_DECISION
        assert store.state is before

    @pytest.mark.asyncio
    async def test_chunked_decision_routes(self, store, settings):
        body = completion([{"type": "text", "text": '{"agent": "socrates", "topicId": "t2"}'}])
        provider = build_provider(lambda request: httpx.Response(200, json=body))
        dispatcher = OrchestratorDispatcher(store, provider, settings)

        result = await dispatcher.dispatch("explain big-o")
        await provider.close()

        assert result.ok
        assert result.topic.id == "t2"
