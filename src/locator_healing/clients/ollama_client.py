"""
HTTP client for the Ollama text-generation API.

Used for AI-suggested locator strategies and for selector healing. Blocking
``requests`` calls run in the event loop's executor so a scenario's control
flow suspends at every AI call.
"""

import asyncio
import logging
import time
from functools import partial
from typing import Any, Dict, Optional

import requests

from ..core.config import settings
from ..core.errors import AIGenerationError

logger = logging.getLogger(__name__)


DEFAULT_OPTIONS = {
    "temperature": 0.3,
    "max_tokens": 500,
    "top_p": 0.9,
    "repeat_penalty": 1.1
}

# Status codes worth retrying; everything else fails at once
RETRYABLE_STATUS = {408, 429}


def _connection_refused(error: BaseException) -> bool:
    """Whether a ConnectionRefusedError sits anywhere in the wrapped error chain."""
    pending, seen = [error], set()
    while pending:
        current = pending.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, ConnectionRefusedError):
            return True
        # requests wraps urllib3 errors in args; urllib3 keeps the socket error in reason
        linked = [current.__cause__, current.__context__, getattr(current, "reason", None), *current.args]
        pending.extend(item for item in linked if isinstance(item, BaseException))
    return False


class OllamaClient:
    """Minimal Ollama API client with bounded exponential backoff."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        health_timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay_ms: Optional[int] = None,
        default_options: Optional[Dict[str, Any]] = None
    ):
        self.base_url = (base_url or settings.OLLAMA_BASE_URL).rstrip("/")
        self.model = model or settings.OLLAMA_MODEL
        self.timeout = timeout if timeout is not None else settings.OLLAMA_TIMEOUT
        self.health_timeout = health_timeout if health_timeout is not None else settings.OLLAMA_HEALTH_TIMEOUT
        self.max_retries = max_retries if max_retries is not None else settings.OLLAMA_MAX_RETRIES
        self.retry_delay_ms = retry_delay_ms if retry_delay_ms is not None else settings.OLLAMA_RETRY_DELAY_MS
        self.default_options = {**DEFAULT_OPTIONS, **(default_options or {})}

    async def generate(self, prompt: str, options: Optional[Dict[str, Any]] = None) -> str:
        """Generate text for a prompt.

        Transient failures (5xx, 408, 429, timeouts, refused connections) are
        retried with ``retry_delay_ms * 2**attempt`` backoff; anything else
        fails on the first attempt.

        Args:
            prompt: Prompt text
            options: Overrides for temperature, max_tokens, top_p, repeat_penalty

        Returns:
            The generated response text

        Raises:
            AIGenerationError: If the call fails or returns no usable payload
        """
        last_error: Optional[AIGenerationError] = None

        for attempt in range(self.max_retries + 1):
            try:
                return await self._run_blocking(self._post_generate, prompt, options or {})
            except AIGenerationError as e:
                last_error = e
                if not e.retryable or attempt == self.max_retries:
                    raise

                delay_ms = self.retry_delay_ms * (2 ** attempt)
                logger.warning(
                    f"Ollama API error (attempt {attempt + 1}/{self.max_retries + 1}): {e}. "
                    f"Retrying in {delay_ms}ms"
                )
                await asyncio.sleep(delay_ms / 1000)

        raise last_error or AIGenerationError("Failed to generate text after retries")

    async def prompt(self, text: str, system_prompt: Optional[str] = None) -> str:
        """Free-form prompt with the defaults used for healing analysis."""
        full_prompt = f"{system_prompt}\n{text}" if system_prompt else text
        return await self.generate(full_prompt, {"temperature": 0.4, "max_tokens": 800})

    async def health(self) -> bool:
        """Probe ``/api/tags``; never raises."""
        try:
            return await self._run_blocking(self._get_tags)
        except Exception as e:
            logger.debug(f"Ollama health check failed: {e}")
            return False

    async def _run_blocking(self, func, *args):
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    def _post_generate(self, prompt: str, options: Dict[str, Any]) -> str:
        merged = {**self.default_options, **options}
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": merged.get("temperature"),
                "num_predict": merged.get("max_tokens"),
                "top_p": merged.get("top_p"),
                "repeat_penalty": merged.get("repeat_penalty")
            }
        }

        start_time = time.time()
        try:
            response = requests.post(
                f"{self.base_url}/api/generate",
                json=payload,
                timeout=self.timeout,
                headers={'Content-Type': 'application/json'}
            )
        except requests.exceptions.Timeout as e:
            raise AIGenerationError(f"Ollama API timeout after {self.timeout}s", retryable=True) from e
        except requests.exceptions.ConnectionError as e:
            if _connection_refused(e):
                raise AIGenerationError(
                    f"Ollama connection refused at {self.base_url}; is 'ollama serve' running?",
                    retryable=True
                ) from e
            raise AIGenerationError(f"Ollama connection failed: {e}") from e
        except requests.exceptions.RequestException as e:
            raise AIGenerationError(f"Ollama request failed: {e}") from e

        duration = time.time() - start_time

        if response.status_code != 200:
            status = response.status_code
            raise AIGenerationError(
                f"Ollama API error: {status} {response.reason}",
                status_code=status,
                retryable=500 <= status < 600 or status in RETRYABLE_STATUS
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AIGenerationError(f"Ollama returned invalid JSON: {e}") from e

        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise AIGenerationError("Ollama response has no 'response' field")

        logger.debug(f"Ollama generated {len(text)} chars with {self.model} in {duration:.2f}s")
        return text

    def _get_tags(self) -> bool:
        response = requests.get(f"{self.base_url}/api/tags", timeout=self.health_timeout)
        return response.status_code == 200
