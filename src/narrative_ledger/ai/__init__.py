# ABOUTME: Text generation integration for Google Gemini.
# ABOUTME: Exposes the Generator protocol, GeminiGenerator, and cancellation primitives.

from narrative_ledger.ai.generator import (
    CancellationToken,
    GeminiGenerator,
    GenerationCancelled,
    GenerationError,
    Generator,
)

__all__ = [
    "CancellationToken",
    "GeminiGenerator",
    "GenerationCancelled",
    "GenerationError",
    "Generator",
]
