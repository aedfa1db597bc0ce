"""Client for OpenAI-compatible chat completion APIs."""

from __future__ import annotations

import json
import logging
from typing import Any, Sequence

import httpx

from cartpilot.core.errors import ModelTransportError
from cartpilot.memory.models import FunctionCallRequest, Role, TurnEntry

from .base import ChunkSink, ModelReply, ModelService


class OpenAIChatModel(ModelService):
    """Call ``/chat/completions`` with the ``functions`` protocol.

    Only the first system entry of the history is sent. Additional context is
    appended as an extra user message that never reaches the turn log. When
    streaming, content deltas are forwarded to the chunk sink and function
    call deltas are accumulated into a single request.
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        functions: list[dict[str, Any]],
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o",
        temperature: float = 0.7,
        max_tokens: int = 2000,
        timeout: float = 30.0,
        stream: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._functions = functions
        self._url = base_url.rstrip("/") + "/chat/completions"
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._timeout = timeout
        self._stream = stream
        self._transport = transport
        self._logger = logging.getLogger("cartpilot.model")

    def describe(self) -> str:
        return f"{self._model} via {self._url}"

    async def send(
        self,
        history: Sequence[TurnEntry],
        user_text: str,
        context: str | None = None,
        on_chunk: ChunkSink | None = None,
    ) -> ModelReply:
        messages = to_messages(history)
        messages.append({"role": "user", "content": user_text})
        if context:
            messages.append({"role": "user", "content": f"Additional context: {context}"})

        if self._stream and on_chunk is not None:
            return await self._complete_streaming(messages, on_chunk)
        return await self._complete(messages)

    async def continue_(self, history: Sequence[TurnEntry]) -> ModelReply:
        return await self._complete(to_messages(history))

    def _payload(self, messages: list[dict[str, Any]], *, stream: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }
        if self._functions:
            payload["functions"] = self._functions
            payload["function_call"] = "auto"
        if stream:
            payload["stream"] = True
        return payload

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise ModelTransportError("Model API key is not configured.")
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def _complete(self, messages: list[dict[str, Any]]) -> ModelReply:
        headers = self._headers()
        try:
            async with self._client() as client:
                response = await client.post(self._url, headers=headers, json=self._payload(messages, stream=False))
        except httpx.HTTPError as exc:
            self._logger.warning("Chat completion request failed: %s", exc)
            raise ModelTransportError(f"Model service unreachable: {exc}") from exc

        _raise_for_status(response)
        try:
            data = response.json()
            message = data["choices"][0]["message"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ModelTransportError("Model service returned an unexpected response") from exc

        call = message.get("function_call")
        if call and call.get("name"):
            return ModelReply(
                function_call=FunctionCallRequest(name=call["name"], arguments=call.get("arguments") or "{}")
            )
        return ModelReply(text=message.get("content") or "")

    async def _complete_streaming(self, messages: list[dict[str, Any]], on_chunk: ChunkSink) -> ModelReply:
        headers = self._headers()
        text_parts: list[str] = []
        call_name = ""
        call_arguments: list[str] = []

        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    self._url,
                    headers=headers,
                    json=self._payload(messages, stream=True),
                ) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        _raise_for_status(response)

                    async for line in response.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:"):].strip()
                        if data == "[DONE]":
                            break
                        try:
                            chunk = json.loads(data)
                        except ValueError:
                            self._logger.debug("Skipping malformed stream chunk: %s", data[:80])
                            continue

                        choices = chunk.get("choices") or [{}]
                        delta = choices[0].get("delta") or {}
                        content = delta.get("content")
                        if content:
                            text_parts.append(content)
                            await on_chunk(content)
                        call_delta = delta.get("function_call")
                        if call_delta:
                            call_name += call_delta.get("name") or ""
                            call_arguments.append(call_delta.get("arguments") or "")
        except httpx.HTTPError as exc:
            self._logger.warning("Streaming chat completion failed: %s", exc)
            raise ModelTransportError(f"Model service unreachable: {exc}") from exc

        if call_name:
            return ModelReply(
                function_call=FunctionCallRequest(name=call_name, arguments="".join(call_arguments) or "{}")
            )
        return ModelReply(text="".join(text_parts))


def to_messages(history: Sequence[TurnEntry]) -> list[dict[str, Any]]:
    """Convert the turn log into chat completion messages."""

    messages: list[dict[str, Any]] = []
    system_sent = False
    for entry in history:
        if entry.role is Role.SYSTEM:
            if not system_sent:
                messages.append({"role": "system", "content": entry.content or ""})
                system_sent = True
            continue
        if entry.role is Role.FUNCTION:
            messages.append({"role": "function", "name": entry.name, "content": entry.result_text()})
            continue
        if entry.function_call is not None:
            messages.append({"role": "assistant", "content": None, "function_call": entry.function_call.to_dict()})
            continue
        messages.append({"role": entry.role.value, "content": entry.content or ""})
    return messages


def _raise_for_status(response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    if response.status_code == 429:
        raise ModelTransportError("Rate limit exceeded. Please try again in a moment.", status_code=429)
    if response.status_code == 401:
        raise ModelTransportError("Invalid API key. Please check the model service configuration.", status_code=401)

    detail = ""
    try:
        detail = response.json().get("error", {}).get("message", "")
    except (ValueError, AttributeError):
        detail = response.text[:200]
    raise ModelTransportError(
        f"Model service error {response.status_code}: {detail or 'Unknown error occurred'}",
        status_code=response.status_code,
    )
