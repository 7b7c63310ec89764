"""LLM collaborator — provider routing (xAI/Grok, OpenAI-compatible, Gemini, Anthropic).

The client only moves text: callers build the prompt and decide what a
usable answer looks like. Failures surface as the error taxonomy so the core
can fall back (TransportError, MalformedResponseError, ConfigurationError).
"""

import json
import re

import httpx

from .config import get_config
from .errors import ConfigurationError, MalformedResponseError, TransportError

DEFAULT_MODELS = {
    "xai": "grok-2-latest",
    "openai": "gpt-4o-mini",
    "gemini": "gemini-2.0-flash",
    "anthropic": "claude-sonnet-4-6",
}

XAI_URL = "https://api.x.ai/v1"
OPENAI_URL = "https://api.openai.com/v1"


def extract_json(text: str):
    """Extract a JSON object or array from markdown code blocks or raw text."""
    m = re.search(r'```(?:json)?\s*\n?(.*?)\n?```', text, re.DOTALL)
    if m:
        text = m.group(1).strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # Fall back to the outermost bracketed span, whichever kind opens first
    spans = []
    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = text.find(opener), text.rfind(closer)
        if start != -1 and end > start:
            spans.append((start, text[start:end + 1]))
    for _, candidate in sorted(spans):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    return None


class LLMClient:
    def __init__(self, provider: str, api_key: str, model: str = "", base_url: str = "",
                 timeout: float = 60.0, transport: httpx.AsyncBaseTransport | None = None):
        self.provider = provider
        self.api_key = api_key
        self.model = model or DEFAULT_MODELS.get(provider, "")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_config(cls, cfg=None) -> "LLMClient | None":
        """Build a client from config, or None when no provider has a key."""
        cfg = cfg or get_config()
        provider = cfg.llm_provider
        if not provider and cfg.grok_api_key:
            provider = "xai"
        if not provider:
            return None

        api_key = cfg.llm_api_key
        if provider == "xai":
            api_key = cfg.grok_api_key or cfg.llm_api_key
        if not api_key:
            print(f"[LLM] No API key for {provider} — running without LLM")
            return None

        return cls(provider, api_key, model=cfg.llm_model,
                   base_url=cfg.llm_base_url, timeout=cfg.http_timeout)

    @property
    def supports_live_search(self) -> bool:
        return self.provider == "xai"

    def _request(self, prompt: str, system: str, temperature: float,
                 live_search: bool) -> tuple[str, dict, dict]:
        """(url, payload, headers) for the configured provider."""
        if self.provider in ("xai", "openai"):
            default = XAI_URL if self.provider == "xai" else OPENAI_URL
            url = f"{self.base_url or default}/chat/completions"
            messages = [{"role": "user", "content": prompt}]
            if system:
                messages.insert(0, {"role": "system", "content": system})
            payload = {"model": self.model, "messages": messages, "temperature": temperature}
            if live_search and self.supports_live_search:
                payload["search_parameters"] = {"mode": "on", "return_citations": True}
            return url, payload, {"Authorization": f"Bearer {self.api_key}"}

        if self.provider == "gemini":
            base = self.base_url or "https://generativelanguage.googleapis.com/v1beta"
            url = f"{base}/models/{self.model}:generateContent?key={self.api_key}"
            text = f"{system}\n\n{prompt}" if system else prompt
            payload = {
                "contents": [{"parts": [{"text": text}]}],
                "generationConfig": {"temperature": temperature},
            }
            return url, payload, {}

        if self.provider == "anthropic":
            url = f"{self.base_url or 'https://api.anthropic.com/v1'}/messages"
            payload = {
                "model": self.model,
                "max_tokens": 2048,
                "temperature": temperature,
                "messages": [{"role": "user", "content": prompt}],
            }
            if system:
                payload["system"] = system
            return url, payload, {"x-api-key": self.api_key, "anthropic-version": "2023-06-01"}

        raise ConfigurationError(f"Unknown LLM provider: {self.provider!r}")

    def _response_text(self, data: dict) -> str:
        try:
            if self.provider in ("xai", "openai"):
                return data["choices"][0]["message"]["content"] or ""
            if self.provider == "gemini":
                return data["candidates"][0]["content"]["parts"][0]["text"]
            return data["content"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedResponseError(f"{self.provider} response missing text: {e}") from e

    async def complete(self, prompt: str, system: str = "", temperature: float = 0.1,
                       live_search: bool = False) -> str:
        """Send one prompt and return the model's text."""
        url, payload, headers = self._request(prompt, system, temperature, live_search)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(url, json=payload, headers=headers)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as e:
            raise TransportError(f"{self.provider} call failed: {e}") from e
        except ValueError as e:
            raise MalformedResponseError(f"{self.provider} returned non-JSON body") from e
        return self._response_text(data)

    async def complete_json(self, prompt: str, system: str = "", temperature: float = 0.1,
                            live_search: bool = False):
        """Like complete(), but the answer must contain JSON."""
        text = await self.complete(prompt, system, temperature, live_search)
        data = extract_json(text)
        if data is None:
            raise MalformedResponseError(f"{self.provider} response not parseable: {text[:120]!r}")
        return data
