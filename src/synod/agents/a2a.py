"""
A2A Channel - async HTTP client for remote agents.

Discovery reads the agent card(s) at `{endpoint}/.well-known/agent.json`;
messages go to the card's `url` as JSON-RPC 2.0 `message/send` calls.
"""

from __future__ import annotations

import uuid
from typing import Any
from urllib.parse import urljoin

import httpx
import structlog

from synod.errors import RemoteAgentTimeout, RemoteAgentUnavailable
from synod.providers.base import AgentHandle, Credential, RemoteAgentChannel

logger = structlog.get_logger()

AGENT_CARD_PATH = "/.well-known/agent.json"


def _cards(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, dict) and isinstance(payload.get("agents"), list):
        payload = payload["agents"]
    if isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list):
        return []
    return [card for card in payload if isinstance(card, dict)]


def _parts_text(parts: Any) -> str | None:
    if not isinstance(parts, list):
        return None
    texts = [
        str(part.get("text"))
        for part in parts
        if isinstance(part, dict) and part.get("text") is not None
    ]
    return "\n".join(texts) if texts else None


def extract_text(result: Any) -> str | None:
    """Reply text from a `message/send` result (a Message or a Task)."""
    if isinstance(result, str):
        return result
    if not isinstance(result, dict):
        return None
    text = _parts_text(result.get("parts"))
    if text is not None:
        return text
    artifact_texts = []
    for artifact in result.get("artifacts") or []:
        if isinstance(artifact, dict):
            artifact_text = _parts_text(artifact.get("parts"))
            if artifact_text is not None:
                artifact_texts.append(artifact_text)
    if artifact_texts:
        return "\n".join(artifact_texts)
    status_message = (result.get("status") or {}).get("message")
    if isinstance(status_message, dict):
        return _parts_text(status_message.get("parts"))
    return None


class A2AChannel(RemoteAgentChannel):
    """
    Remote agent channel over httpx.

    Example:
        async with A2AChannel() as channel:
            handle = await channel.discover("https://agents.example.com", "Reviewer")
            reply = await channel.send(handle, history.to_list())
    """

    def __init__(
        self,
        timeout_seconds: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._handles: dict[tuple[str, str | None], AgentHandle] = {}

    async def __aenter__(self) -> A2AChannel:
        await self._ensure_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        url: str,
        credential: Credential | None,
        **kwargs: Any,
    ) -> Any:
        headers = dict(credential.headers) if credential else {}
        try:
            client = await self._ensure_client()
            response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise RemoteAgentTimeout(f"request to {url} timed out: {e}", url) from e
        except httpx.RequestError as e:
            raise RemoteAgentUnavailable(f"failed to reach {url}: {e}", url) from e

        if response.status_code >= 500:
            raise RemoteAgentUnavailable(f"{url} returned HTTP {response.status_code}", url)
        if response.status_code >= 400:
            raise RemoteAgentUnavailable(
                f"{url} rejected the request with HTTP {response.status_code}",
                url,
                retryable=False,
            )
        try:
            return response.json()
        except ValueError as e:
            raise RemoteAgentUnavailable(
                f"{url} returned invalid JSON", url, retryable=False
            ) from e

    async def discover(
        self,
        endpoint: str,
        name: str | None = None,
        credential: Credential | None = None,
    ) -> AgentHandle:
        """
        Discover an agent at an endpoint.

        Raises:
            RemoteAgentUnavailable: No card, no matching card, or several
                cards and no name to choose between them
        """
        key = (endpoint, name)
        if key in self._handles:
            return self._handles[key]

        card_url = endpoint.rstrip("/") + AGENT_CARD_PATH
        cards = _cards(await self._request("GET", card_url, credential))
        if name is not None:
            matches = [card for card in cards if card.get("name") == name]
        else:
            matches = cards
        if not matches:
            raise RemoteAgentUnavailable(
                f"no agent {name!r} advertised at {endpoint}" if name
                else f"no agent card at {endpoint}",
                endpoint,
                retryable=False,
            )
        if len(matches) > 1:
            raise RemoteAgentUnavailable(
                f"{endpoint} advertises {len(matches)} agents; a name is required",
                endpoint,
                retryable=False,
            )

        card = matches[0]
        handle = AgentHandle(
            endpoint=endpoint,
            name=str(card.get("name") or name or endpoint),
            url=urljoin(endpoint.rstrip("/") + "/", str(card.get("url") or endpoint)),
            card=card,
        )
        self._handles[key] = handle
        logger.debug(
            "Discovered remote agent", endpoint=endpoint, agent=handle.name, url=handle.url
        )
        return handle

    async def send(
        self,
        handle: AgentHandle,
        messages: list[dict[str, Any]],
        credential: Credential | None = None,
    ) -> str:
        if len(messages) == 1:
            text = str(messages[0].get("content", ""))
        else:
            text = "\n".join(f"{m.get('name')}: {m.get('content')}" for m in messages)
        payload = {
            "jsonrpc": "2.0",
            "id": str(uuid.uuid4()),
            "method": "message/send",
            "params": {
                "message": {
                    "kind": "message",
                    "role": "user",
                    "messageId": str(uuid.uuid4()),
                    "parts": [{"kind": "text", "text": text}],
                    "metadata": {"history": messages},
                }
            },
        }
        data = await self._request("POST", handle.url, credential, json=payload)

        if not isinstance(data, dict):
            raise RemoteAgentUnavailable(
                "malformed JSON-RPC response", handle.url, retryable=False
            )
        if data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise RemoteAgentUnavailable(
                f"agent {handle.name!r} returned an error: {message}",
                handle.url,
                retryable=False,
            )
        reply = extract_text(data.get("result"))
        if reply is None:
            raise RemoteAgentUnavailable(
                f"agent {handle.name!r} returned no text", handle.url, retryable=False
            )
        return reply
