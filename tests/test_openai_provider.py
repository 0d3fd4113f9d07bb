import json

import httpx
import pytest

from juno.config import Settings
from juno.conversation import ConversationEngine
from juno.errors import ConfigurationMissingError, TransportError
from juno.llm.openai import OpenAIProvider
from juno.models import Message

BODY = (
    b'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n'
    b'data: {"choices":[{"delta":{"content":"lo"}}]}\n\n'
    b"data: [DONE]\n\n"
)


def _settings(**overrides) -> Settings:
    return Settings(api_key="sk-test", base_url="https://api.test/v1", **overrides)


async def _collect(provider: OpenAIProvider, **kwargs) -> bytes:
    data = b""
    async for chunk in provider.stream_chat([{"role": "user", "content": "hi"}], **kwargs):
        data += chunk
    return data


@pytest.mark.asyncio
async def test_streams_body_with_auth_and_payload():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=BODY, headers={"Content-Type": "text/event-stream"})

    provider = OpenAIProvider(_settings(), transport=httpx.MockTransport(handler))

    body = await _collect(provider, model="gpt-test", temperature=0.5)

    assert body == BODY
    request = seen[0]
    assert request.url == "https://api.test/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer sk-test"
    payload = json.loads(request.content)
    assert payload == {
        "model": "gpt-test",
        "messages": [{"role": "user", "content": "hi"}],
        "stream": True,
        "temperature": 0.5,
    }


@pytest.mark.asyncio
async def test_functions_are_advertised_with_auto_call():
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, content=b"data: [DONE]\n\n")

    provider = OpenAIProvider(_settings(), transport=httpx.MockTransport(handler))
    functions = [{"name": "getContext", "description": "d", "parameters": {"type": "object"}}]

    await _collect(provider, model="m", functions=functions)

    assert seen[0]["functions"] == functions
    assert seen[0]["function_call"] == "auto"


@pytest.mark.asyncio
async def test_error_status_raises_transport_error_with_excerpt():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"message": "bad key"}})

    provider = OpenAIProvider(_settings(), transport=httpx.MockTransport(handler))

    with pytest.raises(TransportError) as excinfo:
        await _collect(provider, model="m")

    assert excinfo.value.status_code == 401
    assert "bad key" in str(excinfo.value)


@pytest.mark.asyncio
async def test_network_failure_raises_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = OpenAIProvider(_settings(), transport=httpx.MockTransport(handler))

    with pytest.raises(TransportError) as excinfo:
        await _collect(provider, model="m")

    assert excinfo.value.status_code is None


def test_missing_api_key_is_configuration_error():
    with pytest.raises(ConfigurationMissingError) as excinfo:
        OpenAIProvider(Settings(api_key=None))

    assert excinfo.value.settings_key == "JUNO_API_KEY"
    assert str(excinfo.value) == "Missing setting: OpenAI API Key"


@pytest.mark.asyncio
async def test_engine_over_http_stream():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=BODY)

    engine = ConversationEngine(OpenAIProvider(_settings(), transport=httpx.MockTransport(handler)))

    assert await engine.run([Message.user("hi")]) == "Hello"
