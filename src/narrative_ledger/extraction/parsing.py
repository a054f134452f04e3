# ABOUTME: Cleans and validates generator JSON output, retrying at low temperature on failure.
# ABOUTME: Provides generate_and_parse, the single entry point extractors use to call the backend.

import asyncio
import html
import json
import re
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from narrative_ledger.ai.generator import (
    CancellationToken,
    GenerationCancelled,
    GenerationError,
    Generator,
)

log = structlog.get_logger()

M = TypeVar("M", bound=BaseModel)


class ParseError(ValueError):
    """Generator output was empty, malformed, or did not match the schema."""


def strip_markdown_fences(text: str) -> str:
    """Strip markdown code fences from a generator response.

    Models often wrap JSON responses in ```json ... ``` blocks.
    """
    pattern = r"^```(?:json)?\s*\n?(.*?)\n?```$"
    match = re.match(pattern, text.strip(), re.DOTALL)
    if match:
        return match.group(1).strip()
    return text.strip()


def fix_json_trailing_commas(text: str) -> str:
    """Remove trailing commas before } or ] (common generator error)."""
    text = re.sub(r",\s*}", "}", text)
    text = re.sub(r",\s*]", "]", text)
    return text


def unescape_html_entities(data: Any) -> Any:
    """Recursively unescape HTML entities such as &#39; in parsed JSON data."""
    if isinstance(data, str):
        return html.unescape(data)
    if isinstance(data, dict):
        return {k: unescape_html_entities(v) for k, v in data.items()}
    if isinstance(data, list):
        return [unescape_html_entities(item) for item in data]
    return data


def parse_json_response(response: str) -> Any:
    """Parse JSON from a generator response, handling common issues.

    Handles:
    - Empty responses
    - Markdown code fences (```json ... ```)
    - Trailing commas
    - Prose around a single JSON object

    Raises:
        ParseError: If the response is empty or not valid JSON after fixes.
    """
    if not response or not response.strip():
        raise ParseError("Generator returned empty response")

    cleaned = fix_json_trailing_commas(strip_markdown_fences(response))
    try:
        return unescape_html_entities(json.loads(cleaned))
    except json.JSONDecodeError as e:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if 0 <= start < end:
            try:
                return unescape_html_entities(json.loads(cleaned[start : end + 1]))
            except json.JSONDecodeError:
                pass
        raise ParseError(f"Invalid JSON: {e}") from e


def parse_model(response: str, schema: type[M]) -> M:
    """Parse a response and validate it against ``schema``.

    Raises:
        ParseError: If parsing or schema validation fails.
    """
    data = parse_json_response(response)
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise ParseError(f"Schema mismatch for {schema.__name__}: {e.error_count()} errors") from e


@dataclass
class ParseOutcome(Generic[M]):
    """Result of one generate-and-parse exchange."""

    success: bool
    data: M | None = None
    error: str | None = None
    aborted: bool = False


async def generate_and_parse(
    generator: Generator,
    prompt: str,
    schema: type[M],
    *,
    temperature: float,
    system_prompt: str = "",
    cancel: CancellationToken | None = None,
    max_retries: int = 2,
    retry_temperature: float = 0.1,
    timeout: float | None = None,
    extractor: str = "",
) -> ParseOutcome[M]:
    """Call the generator and parse its output into ``schema``.

    Parse failures are retried up to ``max_retries`` times at
    ``retry_temperature``. Generation failures and timeouts end the exchange
    immediately. Nothing is raised: failures are reported in the outcome.
    """
    attempt_temperature = temperature
    last_error = ""

    for attempt in range(max_retries + 1):
        if cancel is not None and cancel.cancelled:
            return ParseOutcome(success=False, error="cancelled", aborted=True)
        try:
            call = generator.generate(
                prompt,
                attempt_temperature,
                system_prompt=system_prompt,
                cancel=cancel,
            )
            response = await (asyncio.wait_for(call, timeout) if timeout else call)
        except GenerationCancelled:
            return ParseOutcome(success=False, error="cancelled", aborted=True)
        except (GenerationError, TimeoutError) as e:
            error = str(e) or type(e).__name__
            log.warning("generation_failed", extractor=extractor, error=error)
            return ParseOutcome(success=False, error=error)

        try:
            return ParseOutcome(success=True, data=parse_model(response, schema))
        except ParseError as e:
            last_error = str(e)
            log.warning(
                "parse_failed",
                extractor=extractor,
                attempt=attempt + 1,
                error=last_error,
                response_preview=response[:300],
            )
            attempt_temperature = retry_temperature

    return ParseOutcome(success=False, error=last_error)
