import asyncio
import json

import httpx
import pytest

from cryptochat.chat import ChatClient, ChatError, build_chat_client
from cryptochat.config import settings


def _client(handler):
    return ChatClient(
        api_key="sk-test",
        model="gpt-4o-mini",
        base_url="https://llm.example/v1/",
        transport=httpx.MockTransport(handler),
    )


def test_posts_system_and_user_messages():
    seen = {}

    def handle(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": "BTC is 52%."}}]})

    text = asyncio.run(_client(handle).complete("SYSTEM", "What is BTC dominance?"))
    assert text == "BTC is 52%."
    assert seen["url"] == "https://llm.example/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "gpt-4o-mini"
    assert seen["body"]["messages"] == [
        {"role": "system", "content": "SYSTEM"},
        {"role": "user", "content": "What is BTC dominance?"},
    ]


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": {"message": "boom"}}),
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, text="not json"),
    ],
)
def test_failures_raise_chat_error(response):
    with pytest.raises(ChatError):
        asyncio.run(_client(lambda request: response).complete("SYSTEM", "hi"))


def test_build_chat_client_requires_key(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", "")
    assert build_chat_client() is None
    monkeypatch.setattr(settings, "openai_api_key", "sk-live")
    client = build_chat_client()
    assert client.api_key == "sk-live"
    assert client.model == settings.openai_model


def test_server_error_is_not_retried():
    calls = []

    def handle(request):
        calls.append(request)
        return httpx.Response(503, json={"error": {"message": "overloaded"}})

    with pytest.raises(ChatError):
        asyncio.run(_client(handle).complete("SYSTEM", "hi"))
    assert len(calls) == 1
