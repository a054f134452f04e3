# ABOUTME: Extractor base classes for the three fan-out shapes: global, per-character, per-pair.
# ABOUTME: Shared prompt building, temperature resolution, run checks, and state formatting.

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import ClassVar, Literal, TypeVar

from pydantic import BaseModel

from narrative_ledger.extraction.context import RunContext
from narrative_ledger.extraction.parsing import ParseOutcome, generate_and_parse
from narrative_ledger.extraction.prompts import PromptTemplate, render
from narrative_ledger.extraction.strategies import (
    EveryMessage,
    FixedNumber,
    MessageStrategy,
    RunStrategy,
    evaluate_run_strategy,
    message_count,
)
from narrative_ledger.state.events import BaseEvent
from narrative_ledger.state.snapshot import CharacterState, Projection, RelationshipState

ExtractorShape = Literal["global", "per_character", "per_pair"]

M = TypeVar("M", bound=BaseModel)


class Extractor(ABC):
    """A unit that prompts the generator and turns its answer into events.

    Subclasses declare their shape, category, strategies, and prompt as class
    attributes; the scheduler dispatches on ``shape``.
    """

    shape: ClassVar[ExtractorShape]
    name: ClassVar[str]
    category: ClassVar[str]
    default_temperature: ClassVar[float] = 0.5
    prompt: ClassVar[PromptTemplate]
    message_strategy: ClassVar[MessageStrategy] = FixedNumber(n=2)
    run_strategy: ClassVar[RunStrategy] = EveryMessage()
    # Whether the extractor contributes to the seed pass that builds the initial snapshot
    seeds: ClassVar[bool] = True

    def should_run(self, ctx: RunContext) -> bool:
        """Category enabled and run strategy satisfied for this message."""
        if not ctx.settings.is_enabled(self.category):
            return False
        if ctx.is_seed:
            return self.seeds
        return evaluate_run_strategy(self.run_strategy, ctx.strategy_context(self.name))

    def temperature(self, ctx: RunContext, template: PromptTemplate | None = None) -> float:
        """Per-prompt override, then category override, then extractor default."""
        template = template or self.prompt
        settings = ctx.settings
        if template.name in settings.prompt_temperatures:
            return settings.prompt_temperatures[template.name]
        category_temperature = settings.temperatures.for_category(self.category)
        if category_temperature is not None:
            return category_temperature
        return self.default_temperature

    def message_window(self, ctx: RunContext) -> int:
        return message_count(self.message_strategy, ctx.store, ctx.branch)

    def build_prompt(
        self,
        ctx: RunContext,
        template: PromptTemplate,
        values: dict[str, object],
    ) -> tuple[str, str]:
        """Render system and user prompts, honoring custom prompt overrides."""
        values.setdefault("messages", ctx.format_messages(self.message_window(ctx)))
        custom = ctx.settings.custom_prompts.get(template.name)
        system = custom.system_prompt if custom and custom.system_prompt else template.system
        user = custom.user_template if custom and custom.user_template else template.user
        return render(system, values), render(user, values)

    async def ask(
        self,
        ctx: RunContext,
        schema: type[M],
        template: PromptTemplate | None = None,
        **values: object,
    ) -> ParseOutcome[M]:
        template = template or self.prompt
        system, user = self.build_prompt(ctx, template, values)
        return await generate_and_parse(
            ctx.generator,
            user,
            schema,
            temperature=self.temperature(ctx, template),
            system_prompt=system,
            cancel=ctx.cancel,
            max_retries=ctx.settings.parse_retries,
            retry_temperature=ctx.settings.retry_temperature,
            timeout=ctx.settings.generation_timeout,
            extractor=self.name,
        )


class GlobalExtractor(Extractor):
    """Runs at most once per message."""

    shape: ClassVar[ExtractorShape] = "global"

    @abstractmethod
    async def run(self, ctx: RunContext) -> list[BaseEvent]: ...


class PerCharacterExtractor(Extractor):
    """Runs once per present character."""

    shape: ClassVar[ExtractorShape] = "per_character"

    def characters(self, ctx: RunContext, projection: Projection) -> list[str]:
        return list(projection.characters_present)

    @abstractmethod
    async def run(self, ctx: RunContext, character: str) -> list[BaseEvent]: ...


class PerPairExtractor(Extractor):
    """Runs once per pair of present characters with a relationship."""

    shape: ClassVar[ExtractorShape] = "per_pair"

    def pairs(self, ctx: RunContext, projection: Projection) -> list[tuple[str, str]]:
        return projection.present_pairs()

    @abstractmethod
    async def run(self, ctx: RunContext, pair: tuple[str, str]) -> list[BaseEvent]: ...


@dataclass(frozen=True)
class Section:
    """A named group of extractors run in order; sections themselves run in a fixed order."""

    name: str
    extractors: Sequence[Extractor]
    # Included in the seed pass that builds the initial snapshot
    seeds: bool = False


# State formatting for prompts


def format_list(values: list[str]) -> str:
    return ", ".join(values) if values else "none"


def format_character(state: CharacterState | None) -> str:
    if state is None:
        return "(unknown)"
    worn = {slot: item for slot, item in state.outfit.model_dump().items() if item}
    lines = [
        f"Position: {state.position or 'unknown'}",
        f"Activity: {state.activity or 'none'}",
        f"Mood: {format_list(state.mood)}",
        f"Physical state: {format_list(state.physical_state)}",
        f"Outfit: {', '.join(f'{slot}={item}' for slot, item in worn.items()) or 'unknown'}",
    ]
    return "\n".join(lines)


def format_relationship(rel: RelationshipState | None) -> str:
    if rel is None:
        return "(no relationship yet)"
    a, b = rel.pair
    return "\n".join(
        [
            f"Status: {rel.status}",
            f"{a} toward {b}: feelings {format_list(rel.a_to_b.feelings)}; "
            f"wants {format_list(rel.a_to_b.wants)}; secrets {format_list(rel.a_to_b.secrets)}",
            f"{b} toward {a}: feelings {format_list(rel.b_to_a.feelings)}; "
            f"wants {format_list(rel.b_to_a.wants)}; secrets {format_list(rel.b_to_a.secrets)}",
        ]
    )


def format_state(projection: Projection) -> str:
    """Compact description of the scene used as prompt context."""
    lines = [f"Time: {projection.time.isoformat() if projection.time else 'unknown'}"]
    if projection.location:
        loc = projection.location
        lines.append(f"Location: {loc.area} / {loc.place} / {loc.position} ({loc.location_type})")
        lines.append(f"Props: {format_list(loc.props)}")
    else:
        lines.append("Location: unknown")
    if projection.climate:
        lines.append(f"Climate: {projection.climate.conditions}")
    if projection.scene:
        scene = projection.scene
        lines.append(f"Topic: {scene.topic or 'unknown'}; tone: {scene.tone or 'unknown'}")
        lines.append(f"Tension: {scene.tension.level} ({scene.tension.type})")
    lines.append(f"Present: {format_list(projection.characters_present)}")
    return "\n".join(lines)


def format_outfits(projection: Projection) -> str:
    """Worn clothing of every present character, one line each."""
    lines = []
    for name in projection.characters_present:
        state = projection.find_character(name)
        if state is None:
            continue
        worn = [item for item in state.outfit.model_dump().values() if item]
        lines.append(f"{state.name}: {format_list(worn)}")
    return "\n".join(lines) or "none"
