from __future__ import annotations
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional
import httpx

from deepchat.config import Settings
from deepchat.core.errors import (
    ConfigurationError,
    InvalidResponseShape,
    NetworkFailure,
    UpstreamRejected,
)

logger = logging.getLogger(__name__)


def _error_body(raw: bytes) -> Any:
    text = raw.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        return text


def _has_message(envelope: Any) -> bool:
    if not isinstance(envelope, dict):
        return False
    choices = envelope.get("choices")
    if not isinstance(choices, list) or not choices:
        return False
    first = choices[0]
    return isinstance(first, dict) and isinstance(first.get("message"), dict)


class CompletionGateway:
    """Calls the OpenAI-compatible chat completion endpoint. No retries."""

    id = "upstream"

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        api_key = self.settings.infini_ai_api_key
        if not api_key:
            raise ConfigurationError("Completion API key is not configured")
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def _payload(self, messages: List[Dict[str, str]], stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"model": self.settings.completion_model, "messages": messages}
        if stream:
            payload["stream"] = True
        return payload

    def _client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(
            connect=self.settings.upstream_connect_timeout,
            read=self.settings.upstream_read_timeout,
            write=30.0,
            pool=10.0,
        )
        return httpx.AsyncClient(timeout=timeout, transport=self.transport, trust_env=self.transport is None)

    async def complete(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        headers = self._headers()
        payload = self._payload(messages, stream=False)
        try:
            async with self._client() as client:
                resp = await client.post(self.settings.completion_url, headers=headers, json=payload)
        except httpx.TransportError as e:
            logger.warning("completion request failed: %s", e)
            raise NetworkFailure(f"Could not reach completion service: {e}") from e

        if resp.is_error:
            body = _error_body(resp.content)
            logger.warning("completion rejected status=%d body=%s", resp.status_code, body)
            raise UpstreamRejected(resp.status_code, body)

        try:
            envelope = resp.json()
        except ValueError as e:
            raise InvalidResponseShape("Completion service returned invalid JSON") from e
        if not _has_message(envelope):
            raise InvalidResponseShape("Completion response has no choices[0].message")
        return envelope

    @asynccontextmanager
    async def stream(self, messages: List[Dict[str, str]]) -> AsyncIterator[AsyncIterator[bytes]]:
        headers = self._headers()
        payload = self._payload(messages, stream=True)
        async with self._client() as client:
            try:
                request = client.build_request("POST", self.settings.completion_url, headers=headers, json=payload)
                resp = await client.send(request, stream=True)
            except httpx.TransportError as e:
                logger.warning("completion stream request failed: %s", e)
                raise NetworkFailure(f"Could not reach completion service: {e}") from e
            try:
                if resp.is_error:
                    try:
                        raw = await resp.aread()
                    except httpx.HTTPError:
                        raw = b""
                    body = _error_body(raw)
                    logger.warning("completion stream rejected status=%d body=%s", resp.status_code, body)
                    raise UpstreamRejected(resp.status_code, body)
                yield resp.aiter_bytes()
            finally:
                await resp.aclose()
