"""
Tests for the A2A channel against a mocked HTTP transport.
"""

from __future__ import annotations

import json

import httpx
import pytest

from synod.agents.a2a import A2AChannel, extract_text
from synod.errors import RemoteAgentTimeout, RemoteAgentUnavailable
from synod.providers.base import Credential

ENDPOINT = "https://agents.example"


def card(name: str, url: str = "/rpc") -> dict:
    return {"name": name, "url": url, "description": f"{name} agent"}


class Server:
    """Programmable stand-in for an A2A host."""

    def __init__(self, cards, reply=None, status: int = 200) -> None:
        self.cards = cards
        self.reply = reply if reply is not None else {"result": {"parts": [{"text": "hi"}]}}
        self.status = status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/.well-known/agent.json":
            return httpx.Response(200, json=self.cards)
        if self.status != 200:
            return httpx.Response(self.status, text="error")
        body = json.loads(request.content)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], **self.reply})


def channel_for(server) -> A2AChannel:
    return A2AChannel(transport=httpx.MockTransport(server))


class TestDiscover:
    @pytest.mark.asyncio
    async def test_single_card(self):
        async with channel_for(Server(card("Reviewer"))) as channel:
            handle = await channel.discover(ENDPOINT)
        assert handle.name == "Reviewer"
        assert handle.url == "https://agents.example/rpc"

    @pytest.mark.asyncio
    async def test_named_card_from_list(self):
        server = Server({"agents": [card("A", "/a"), card("B", "https://other.example/b")]})
        async with channel_for(server) as channel:
            handle = await channel.discover(ENDPOINT + "/", "B")
        assert handle.url == "https://other.example/b"

    @pytest.mark.asyncio
    async def test_several_cards_need_a_name(self):
        async with channel_for(Server([card("A"), card("B")])) as channel:
            with pytest.raises(RemoteAgentUnavailable, match="name is required"):
                await channel.discover(ENDPOINT)

    @pytest.mark.asyncio
    async def test_unknown_name(self):
        async with channel_for(Server([card("A")])) as channel:
            with pytest.raises(RemoteAgentUnavailable, match="'Z'") as excinfo:
                await channel.discover(ENDPOINT, "Z")
        assert excinfo.value.retryable is False

    @pytest.mark.asyncio
    async def test_handles_are_cached(self):
        server = Server(card("Reviewer"))
        async with channel_for(server) as channel:
            first = await channel.discover(ENDPOINT, "Reviewer")
            second = await channel.discover(ENDPOINT, "Reviewer")
        assert first is second
        assert len(server.requests) == 1


class TestSend:
    @pytest.mark.asyncio
    async def test_json_rpc_message(self):
        server = Server(card("Reviewer"))
        credential = Credential(scheme="bearer", headers={"Authorization": "Bearer t"})
        history = [
            {"role": "user", "name": "user", "content": "Define photosynthesis."},
            {"role": "agent", "name": "Clarity", "content": "Too vague."},
        ]
        async with channel_for(server) as channel:
            handle = await channel.discover(ENDPOINT)
            reply = await channel.send(handle, history, credential)

        assert reply == "hi"
        request = server.requests[-1]
        assert request.method == "POST"
        assert request.headers["Authorization"] == "Bearer t"
        body = json.loads(request.content)
        assert body["method"] == "message/send"
        message = body["params"]["message"]
        assert message["role"] == "user"
        assert message["parts"][0]["text"] == "user: Define photosynthesis.\nClarity: Too vague."
        assert message["metadata"]["history"] == history

    @pytest.mark.asyncio
    async def test_task_artifacts(self):
        reply = {"result": {"kind": "task", "artifacts": [{"parts": [{"text": "from task"}]}]}}
        async with channel_for(Server(card("R"), reply)) as channel:
            handle = await channel.discover(ENDPOINT)
            assert await channel.send(handle, [{"content": "q"}]) == "from task"

    @pytest.mark.asyncio
    async def test_json_rpc_error(self):
        reply = {"error": {"code": -32000, "message": "overloaded"}}
        async with channel_for(Server(card("R"), reply)) as channel:
            handle = await channel.discover(ENDPOINT)
            with pytest.raises(RemoteAgentUnavailable, match="overloaded"):
                await channel.send(handle, [{"content": "q"}])

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,retryable", [(503, True), (403, False)])
    async def test_http_errors(self, status, retryable):
        async with channel_for(Server(card("R"), status=status)) as channel:
            handle = await channel.discover(ENDPOINT)
            with pytest.raises(RemoteAgentUnavailable) as excinfo:
                await channel.send(handle, [{"content": "q"}])
        assert excinfo.value.retryable is retryable

    @pytest.mark.asyncio
    async def test_transport_timeout(self):
        def timeout(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        async with channel_for(timeout) as channel:
            with pytest.raises(RemoteAgentTimeout):
                await channel.discover(ENDPOINT)

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with channel_for(refuse) as channel:
            with pytest.raises(RemoteAgentUnavailable) as excinfo:
                await channel.discover(ENDPOINT)
        assert excinfo.value.retryable is True


class TestExtractText:
    def test_shapes(self):
        assert extract_text("plain") == "plain"
        assert extract_text({"parts": [{"text": "a"}, {"text": "b"}]}) == "a\nb"
        assert extract_text({"status": {"message": {"parts": [{"text": "s"}]}}}) == "s"
        assert extract_text({"kind": "task"}) is None
