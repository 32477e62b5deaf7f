import asyncio
import json

import httpx
import pytest

from rose.core.errors import CompletionError
from rose.engine.llm import AnthropicMessagesClient, ChatMessage, OpenAIChatClient

MESSAGES = [ChatMessage(role="user", content="Bonjour")]


def run_complete(client):
    return asyncio.run(client.complete("Tu es Rose.", MESSAGES, temperature=0.5, max_tokens=64))


def test_openai_client_posts_chat_completion():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "  Bonjour !  "}}]})

    client = OpenAIChatClient(
        "sk-test",
        "gpt-4o",
        base_url="https://llm.example.com/v1/",
        min_interval=0,
        transport=httpx.MockTransport(handler),
    )

    assert run_complete(client) == "Bonjour !"
    assert seen["url"] == "https://llm.example.com/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["messages"][0] == {"role": "system", "content": "Tu es Rose."}
    assert seen["body"]["messages"][1] == {"role": "user", "content": "Bonjour"}
    assert seen["body"]["max_tokens"] == 64


def test_anthropic_client_joins_text_blocks():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"content": [{"type": "text", "text": "Bon"}, {"type": "text", "text": "jour"}]},
        )

    client = AnthropicMessagesClient("ak-test", "claude", min_interval=0, transport=httpx.MockTransport(handler))

    assert run_complete(client) == "Bonjour"
    assert seen["headers"]["x-api-key"] == "ak-test"
    assert seen["headers"]["anthropic-version"] == "2023-06-01"
    assert seen["body"]["system"] == "Tu es Rose."


def test_http_errors_become_completion_errors():
    client = OpenAIChatClient(
        "sk-test",
        "gpt-4o",
        min_interval=0,
        transport=httpx.MockTransport(lambda request: httpx.Response(503, json={"error": "busy"})),
    )

    with pytest.raises(CompletionError):
        run_complete(client)


@pytest.mark.parametrize("payload", [{"choices": []}, {"choices": [{"message": {"content": "   "}}]}])
def test_unusable_payloads_are_rejected(payload):
    client = OpenAIChatClient(
        "sk-test",
        "gpt-4o",
        min_interval=0,
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json=payload)),
    )

    with pytest.raises(CompletionError):
        run_complete(client)
