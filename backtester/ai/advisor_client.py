"""Advisor API client for OpenAI-compatible and Ollama inference servers."""

import logging
import time
from typing import Protocol

import httpx

from backtester.ai.models import AIMetrics
from backtester.core.config import AdvisorConfig
from backtester.errors import AdvisorError

logger = logging.getLogger(__name__)


class Advisor(Protocol):
    """Anything that can turn a context text into a raw advisor reply."""

    async def advise(self, context_text: str, model: str | None = None) -> str: ...


class AdvisorClient:
    """
    Client for an external inference advisor.

    Talks to an OpenAI-compatible /chat/completions endpoint or to Ollama's
    /api/chat, depending on AdvisorConfig.provider. Transport errors are
    retried up to config.max_retries times; every failure surfaces as
    AdvisorError so callers can fall back to local scoring.

    Usage:
        client = AdvisorClient(AdvisorConfig.from_env())
        text = await client.advise(prompt)
        await client.close()
    """

    def __init__(self, config: AdvisorConfig | None = None):
        self.config = config or AdvisorConfig()
        self.metrics = AIMetrics(model_name=self.config.resolved_model)
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.config.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "AdvisorClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _headers(self) -> dict[str, str]:
        key = self.config.resolved_api_key
        return {"Authorization": f"Bearer {key}"} if key else {}

    async def is_available(self) -> bool:
        """Check if the advisor server answers its model listing endpoint."""
        path = "/api/tags" if self.config.provider == "ollama" else "/models"
        try:
            client = await self._get_client()
            response = await client.get(f"{self.config.base_url}{path}", headers=self._headers())
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.debug(f"Advisor availability check failed: {e}")
            return False

    def _request(self, context_text: str, model: str) -> tuple[str, dict]:
        messages = [{"role": "user", "content": context_text}]
        if self.config.provider == "ollama":
            return f"{self.config.base_url}/api/chat", {
                "model": model,
                "messages": messages,
                "stream": False,
                "options": {
                    "temperature": self.config.temperature,
                    "num_predict": self.config.max_tokens,
                },
            }
        return f"{self.config.base_url}/chat/completions", {
            "model": model,
            "messages": messages,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }

    def _extract(self, data: object) -> tuple[str, int]:
        """Pull (text, tokens) out of a decoded reply; AdvisorError on an unexpected shape."""
        if not isinstance(data, dict):
            raise AdvisorError(f"Advisor reply is not a JSON object: {type(data).__name__}")

        if self.config.provider == "ollama":
            message = data.get("message") or {}
            counts = (data.get("prompt_eval_count"), data.get("eval_count"))
        else:
            choices = data.get("choices") or [{}]
            if not isinstance(choices, list) or not isinstance(choices[0], dict):
                raise AdvisorError("Advisor reply has malformed 'choices'")
            message = choices[0].get("message") or {}
            usage = data.get("usage") or {}
            counts = (usage.get("total_tokens") if isinstance(usage, dict) else None,)

        if not isinstance(message, dict):
            raise AdvisorError("Advisor reply has a malformed 'message'")
        tokens = sum(c for c in counts if isinstance(c, int))
        return str(message.get("content") or ""), tokens

    async def advise(self, context_text: str, model: str | None = None) -> str:
        """
        Send the context text and return the raw reply text.

        Args:
            context_text: Full prompt
            model: Model override (defaults to the configured model)

        Returns:
            Raw reply text (non-empty)

        Raises:
            AdvisorError: transport/status failure after retries, a malformed or
                empty reply
        """
        model = model or self.config.resolved_model
        url, payload = self._request(context_text, model)
        attempts = self.config.max_retries + 1
        start_time = time.time()

        for attempt in range(1, attempts + 1):
            try:
                client = await self._get_client()
                response = await client.post(url, json=payload, headers=self._headers())
                response.raise_for_status()
                text, tokens = self._extract(response.json())
                break
            except httpx.TransportError as e:
                logger.warning(f"Advisor request failed (attempt {attempt}/{attempts}): {e}")
                if attempt == attempts:
                    self.metrics.record_failure()
                    raise AdvisorError(f"Advisor unreachable after {attempts} attempts: {e}") from e
            except httpx.HTTPStatusError as e:
                self.metrics.record_failure()
                logger.warning(f"Advisor HTTP error: {e}")
                raise AdvisorError(f"Advisor HTTP error: {e.response.status_code}") from e
            except httpx.HTTPError as e:
                self.metrics.record_failure()
                logger.warning(f"Advisor request error: {e}")
                raise AdvisorError(f"Advisor request error: {e}") from e
            except ValueError as e:
                self.metrics.record_failure()
                raise AdvisorError(f"Advisor returned invalid JSON: {e}") from e
            except AdvisorError:
                self.metrics.record_failure()
                raise

        response_time_ms = (time.time() - start_time) * 1000
        if not text.strip():
            self.metrics.record_failure()
            raise AdvisorError("Advisor returned an empty reply")

        self.metrics.record_call(tokens, response_time_ms)
        logger.debug(f"Advisor response: {tokens} tokens in {response_time_ms:.0f}ms")
        return text

    def get_metrics(self) -> AIMetrics:
        """Get current advisor usage metrics."""
        return self.metrics
