"""Chat-completion clients for the configured model vendor.

OpenAI and Google Gemini sit behind one interface that also carries
function calling (used by the calendar assistant). Callers obtain a
client through get_configured_provider(), which is None when no key is
set so every AI feature can fall back to its deterministic path.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from astralis.core.config import settings

logger = logging.getLogger(__name__)

CHAT_TIMEOUT_SECONDS = 60.0
OPENAI_BASE_URL = "https://api.openai.com/v1"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODELS = {"openai": "gpt-4o-mini", "gemini": "gemini-2.0-flash"}


@dataclass
class ToolCall:
    """A function call requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class ChatMessage:
    role: str  # system | user | assistant | tool
    content: str
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None


@dataclass
class ChatResponse:
    content: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    model: str
    tool_calls: list[ToolCall] = field(default_factory=list)


def _decode_arguments(raw: Any) -> dict[str, Any]:
    """Tool arguments arrive as a JSON string (OpenAI) or an object (Gemini)."""
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        logger.warning("Model returned non-JSON tool arguments")
        return {}
    return decoded if isinstance(decoded, dict) else {}


class AIProvider(ABC):
    """Common interface; tools use the OpenAI function schema {name, description, parameters}."""

    def __init__(self, api_key: str, default_model: str):
        self.api_key = api_key
        self.default_model = default_model

    @abstractmethod
    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        tools: list[dict[str, Any]] | None = None,
    ) -> ChatResponse:
        pass

    @abstractmethod
    async def validate_key(self) -> bool:
        pass

    async def _post(self, url: str, body: dict, **request_kwargs) -> dict:
        async with httpx.AsyncClient(timeout=CHAT_TIMEOUT_SECONDS) as client:
            response = await client.post(url, json=body, **request_kwargs)
            response.raise_for_status()
            return response.json()

    async def _probe(self, url: str, **request_kwargs) -> bool:
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(url, **request_kwargs)
        except httpx.HTTPError as e:
            logger.warning("%s key validation failed: %s", type(self).__name__, e)
            return False
        return response.status_code == 200


# =============================================================================
# OpenAI
# =============================================================================

def _openai_message(message: ChatMessage) -> dict[str, Any]:
    wire: dict[str, Any] = {"role": message.role, "content": message.content}
    if message.tool_calls:
        wire["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
            }
            for call in message.tool_calls
        ]
    if message.tool_call_id:
        wire["tool_call_id"] = message.tool_call_id
    return wire


class OpenAIProvider(AIProvider):
    def __init__(self, api_key: str, default_model: str = DEFAULT_MODELS["openai"]):
        super().__init__(api_key, default_model)

    @property
    def _auth(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def chat(self, messages, model=None, temperature=0.7, max_tokens=2000, tools=None):
        model = model or self.default_model
        body: dict[str, Any] = {
            "model": model,
            "messages": [_openai_message(m) for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if tools:
            body["tools"] = [{"type": "function", "function": t} for t in tools]
            body["tool_choice"] = "auto"

        data = await self._post(f"{OPENAI_BASE_URL}/chat/completions", body, headers=self._auth)

        reply = data["choices"][0]["message"]
        usage = data.get("usage") or {}
        return ChatResponse(
            content=reply.get("content") or "",
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            total_tokens=usage.get("total_tokens", 0),
            model=model,
            tool_calls=[
                ToolCall(
                    id=raw.get("id", ""),
                    name=raw["function"]["name"],
                    arguments=_decode_arguments(raw["function"].get("arguments")),
                )
                for raw in reply.get("tool_calls") or []
            ],
        )

    async def validate_key(self) -> bool:
        return await self._probe(f"{OPENAI_BASE_URL}/models", headers=self._auth)


# =============================================================================
# Gemini
# =============================================================================

def _gemini_contents(messages: list[ChatMessage]) -> tuple[str | None, list[dict]]:
    """Split out the system prompt and map the rest onto Gemini's user/model turns."""
    system_prompt = None
    contents: list[dict] = []
    for message in messages:
        if message.role == "system":
            system_prompt = message.content
            continue
        if message.role == "tool":
            part = {
                "functionResponse": {
                    "name": message.name or "tool",
                    "response": {"content": message.content},
                }
            }
            contents.append({"role": "user", "parts": [part]})
        elif message.tool_calls:
            parts = [
                {"functionCall": {"name": call.name, "args": call.arguments}}
                for call in message.tool_calls
            ]
            contents.append({"role": "model", "parts": parts})
        else:
            role = "model" if message.role == "assistant" else "user"
            contents.append({"role": role, "parts": [{"text": message.content}]})
    return system_prompt, contents


class GeminiProvider(AIProvider):
    def __init__(self, api_key: str, default_model: str = DEFAULT_MODELS["gemini"]):
        super().__init__(api_key, default_model)

    async def chat(self, messages, model=None, temperature=0.7, max_tokens=2000, tools=None):
        model = model or self.default_model
        system_prompt, contents = _gemini_contents(messages)
        body: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
        }
        if system_prompt:
            body["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        if tools:
            body["tools"] = [{"functionDeclarations": tools}]

        data = await self._post(
            f"{GEMINI_BASE_URL}/models/{model}:generateContent",
            body,
            params={"key": self.api_key},
        )

        parts = data["candidates"][0]["content"].get("parts", [])
        calls = [p["functionCall"] for p in parts if "functionCall" in p]
        usage = data.get("usageMetadata") or {}
        prompt_tokens = usage.get("promptTokenCount", 0)
        completion_tokens = usage.get("candidatesTokenCount", 0)
        return ChatResponse(
            content="".join(p["text"] for p in parts if "text" in p),
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            model=model,
            # Gemini does not id its calls
            tool_calls=[
                ToolCall(id=f"call_{i}", name=c["name"], arguments=_decode_arguments(c.get("args")))
                for i, c in enumerate(calls)
            ],
        )

    async def validate_key(self) -> bool:
        return await self._probe(f"{GEMINI_BASE_URL}/models", params={"key": self.api_key})


# =============================================================================
# Factory
# =============================================================================

_PROVIDERS: dict[str, type[AIProvider]] = {
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
}


def get_provider(provider_name: str, api_key: str, model: str | None = None) -> AIProvider:
    provider_cls = _PROVIDERS.get(provider_name)
    if provider_cls is None:
        raise ValueError(f"Unknown provider: {provider_name}")
    return provider_cls(api_key, default_model=model or DEFAULT_MODELS[provider_name])


def get_configured_provider() -> AIProvider | None:
    """Provider from settings, or None when no API key is configured."""
    if not settings.ai_configured:
        return None
    return get_provider(settings.AI_PROVIDER, settings.AI_API_KEY, settings.AI_MODEL or None)
