"""OpenRouter client: chat completions over a list of model IDs (try in order, fall back on failure)."""

from dataclasses import dataclass

import httpx

from search_agent.core.config import config
from search_agent.core.logger import logger

OPENROUTER_BASE = "https://openrouter.ai/api/v1"


@dataclass
class LLMResponse:
    text: str
    model: str
    tokens_used: int = 0


class OpenRouterClient:

    def __init__(
        self,
        api_key: str | None = None,
        models: list[str] | None = None,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.models = models if models is not None else (config.openrouter_models or ["openrouter/free"])
        if not self.models:
            self.models = ["openrouter/free"]
        self.api_key = (api_key or config.openrouter_api_key).strip()
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self.last_model_used: str | None = None

    def _should_retry(self, e: Exception) -> bool:
        if isinstance(e, httpx.HTTPStatusError):
            return e.response.status_code in (429, 500, 502, 503, 504)
        return True

    async def generate(
        self,
        prompt: str,
        max_tokens: int = 1024,
        temperature: float = 0.2,
        system: str | None = None,
    ) -> LLMResponse:
        messages = [{"role": "user", "content": prompt}]
        if system:
            messages.insert(0, {"role": "system", "content": system})
        payload_base = {
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": False,
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        last_error: Exception | None = None
        for model in self.models:
            logger.debug(f"OpenRouter request  {model}  prompt={len(prompt)} chars")
            payload = {**payload_base, "model": model}
            try:
                response = await self.client.post(
                    f"{OPENROUTER_BASE}/chat/completions",
                    json=payload,
                    headers=headers,
                )
                response.raise_for_status()
                data = response.json()
                self.last_model_used = data.get("model") or model
                choice = (data.get("choices") or [{}])[0]
                generated_text = (choice.get("message") or {}).get("content") or ""
                tokens_used = (data.get("usage") or {}).get("total_tokens", 0)
                logger.debug(f"OpenRouter response  {self.last_model_used}  tokens={tokens_used}")
                return LLMResponse(
                    text=generated_text,
                    model=self.last_model_used,
                    tokens_used=tokens_used,
                )
            except Exception as e:
                last_error = e
                if isinstance(e, httpx.HTTPStatusError):
                    body = e.response.text or ""
                    logger.warning(f"OpenRouter {model} {e.response.status_code}: {body[:300]}")
                else:
                    logger.warning(f"OpenRouter {model} failed: {e}")
                if self._should_retry(e):
                    continue
                raise
        if last_error:
            raise last_error
        raise RuntimeError("No OpenRouter models configured")

    async def close(self):
        await self.client.aclose()
