# ABOUTME: Text generation backend used by extractors, with Google Gemini as the implementation.
# ABOUTME: Defines the Generator protocol, cancellation token, and GeminiGenerator with retries.

import asyncio
from collections.abc import Awaitable
from typing import Protocol, TypeVar

import structlog
from google import genai
from google.genai import types
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    wait_exponential,
)

from narrative_ledger.config import Settings, get_settings

log = structlog.get_logger()

T = TypeVar("T")


def _stop_after_configured_attempts(retry_state: RetryCallState) -> bool:
    """Stop once the generator's configured attempt budget is spent."""
    generator = retry_state.args[0]
    return retry_state.attempt_number >= generator.settings.ai_max_attempts


class GenerationError(Exception):
    """The backend failed, timed out, or returned nothing usable."""


class GenerationCancelled(GenerationError):
    """The pass was cancelled while a generation call was pending."""


class CancellationToken:
    """Cooperative cancellation shared by every generator call of one pass."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise GenerationCancelled("Extraction pass was cancelled")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        Raises:
            GenerationCancelled: If cancellation happens before completion.
        """
        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
        if not task.done():
            task.cancel()
            raise GenerationCancelled("Extraction pass was cancelled")
        return task.result()


class Generator(Protocol):
    """The narrow surface the extraction core needs from a text backend."""

    async def generate(
        self,
        prompt: str,
        temperature: float,
        *,
        system_prompt: str = "",
        cancel: CancellationToken | None = None,
    ) -> str: ...


class GeminiGenerator:
    """Generator backed by Google Gemini (API key or Vertex AI)."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self._client: genai.Client | None = None

    @property
    def client(self) -> genai.Client:
        """Lazy-initialized Gemini client."""
        if self._client is None:
            if self.settings.gemini_api_key:
                self._client = genai.Client(
                    api_key=self.settings.gemini_api_key.get_secret_value(),
                )
            elif self.settings.gcp_project:
                self._client = genai.Client(
                    vertexai=True,
                    project=self.settings.gcp_project,
                    location=self.settings.gcp_location,
                )
            else:
                raise ValueError("GEMINI_API_KEY or GCP_PROJECT is required")
        return self._client

    def _generate_content_config(
        self,
        temperature: float,
        system_prompt: str,
    ) -> types.GenerateContentConfig:
        """Create a JSON-mode generation config with safety filters disabled."""
        config = types.GenerateContentConfig(
            temperature=temperature,
            top_p=self.settings.ai_top_p,
            max_output_tokens=self.settings.ai_max_output_tokens,
            response_mime_type="application/json",
            safety_settings=[
                types.SafetySetting(
                    category=category,
                    threshold=types.HarmBlockThreshold.OFF,
                )
                for category in (
                    types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
                    types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
                    types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
                    types.HarmCategory.HARM_CATEGORY_HARASSMENT,
                )
            ],
        )
        if system_prompt:
            config.system_instruction = [types.Part.from_text(text=system_prompt)]
        return config

    @retry(
        retry=retry_if_exception_type(Exception),
        stop=_stop_after_configured_attempts,
        wait=wait_exponential(multiplier=1, min=2, max=30),
        before_sleep=lambda retry_state: log.warning(
            "api_retry",
            attempt=retry_state.attempt_number,
            wait=retry_state.next_action.sleep,
        ),
        reraise=True,
    )
    async def _generate(self, prompt: str, temperature: float, system_prompt: str) -> str:
        """Call Gemini once, retried with exponential backoff on errors (e.g. 429)."""
        log.debug(
            "generating_content",
            model=self.settings.gemini_model,
            prompt_length=len(prompt),
            temperature=temperature,
        )
        response = await self.client.aio.models.generate_content(
            model=self.settings.gemini_model,
            contents=[
                types.Content(role="user", parts=[types.Part.from_text(text=prompt)]),
            ],
            config=self._generate_content_config(temperature, system_prompt),
        )
        text = response.text or ""
        if not text.strip():
            log.warning(
                "empty_generation_result",
                prompt_preview=prompt[:200],
            )
        return text

    async def generate(
        self,
        prompt: str,
        temperature: float,
        *,
        system_prompt: str = "",
        cancel: CancellationToken | None = None,
    ) -> str:
        """Generate text for ``prompt``.

        Raises:
            GenerationCancelled: If ``cancel`` fires before the call completes.
            GenerationError: If the backend keeps failing after retries.
        """
        try:
            if cancel is not None:
                cancel.raise_if_cancelled()
                return await cancel.guard(self._generate(prompt, temperature, system_prompt))
            return await self._generate(prompt, temperature, system_prompt)
        except GenerationError:
            raise
        except Exception as e:
            log.warning("generation_failed", error=str(e), error_type=type(e).__name__)
            raise GenerationError(str(e)) from e
