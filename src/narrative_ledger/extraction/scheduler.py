# ABOUTME: Extraction scheduler running extractor sections in a fixed order for one message.
# ABOUTME: Fans out per character and per pair, commits serially, and appends once per pass.

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from narrative_ledger.ai.generator import CancellationToken, GenerationCancelled, Generator
from narrative_ledger.config import ExtractionSettings
from narrative_ledger.extraction.base import Extractor, Section
from narrative_ledger.extraction.context import (
    ChatMessage,
    ExtractionTracker,
    LoggingProgress,
    ProgressSink,
    RunContext,
)
from narrative_ledger.extraction.extractors import default_sections
from narrative_ledger.state.errors import NoActiveBranch, NoSnapshotError
from narrative_ledger.state.events import BaseEvent, BranchPosition, ChapterEnded
from narrative_ledger.state.snapshot import Snapshot
from narrative_ledger.state.store import EventStore

log = structlog.get_logger()


@dataclass
class ExtractorFailure:
    """An extractor unit that raised instead of returning events."""

    extractor: str
    unit: str
    error: str


@dataclass
class PassResult:
    """Outcome of one scheduling pass."""

    events: tuple[BaseEvent, ...] = ()
    errors: list[ExtractorFailure] = field(default_factory=list)
    aborted: bool = False
    committed: int = 0
    tracker: ExtractionTracker | None = None
    snapshot: Snapshot | None = None

    @property
    def success(self) -> bool:
        return not self.aborted and not self.errors


def _describe_unit(unit: tuple[object, ...]) -> str:
    if not unit:
        return "global"
    value = unit[0]
    if isinstance(value, tuple):
        return "|".join(str(v) for v in value)
    return str(value)


class ExtractionScheduler:
    """Runs every enabled extractor for a message and commits the result.

    Sections run one after another. Within an extractor, per-character and
    per-pair units run concurrently (bounded by ``max_fanout_concurrency``)
    and their batches are committed in unit order once all have finished.
    """

    def __init__(
        self,
        settings: ExtractionSettings,
        generator: Generator,
        sections: Sequence[Section] | None = None,
        progress: ProgressSink | None = None,
    ) -> None:
        self.settings = settings
        self.generator = generator
        self.sections = list(sections) if sections is not None else default_sections()
        self.progress = progress or LoggingProgress()

    def _context(
        self,
        store: EventStore,
        branch: BranchPosition,
        messages: Sequence[ChatMessage],
        tracker: ExtractionTracker | None,
        cancel: CancellationToken | None,
        seed: Snapshot | None = None,
    ) -> RunContext:
        return RunContext(
            settings=self.settings,
            store=store,
            branch=branch,
            messages=messages,
            generator=self.generator,
            cancel=cancel or CancellationToken(),
            progress=self.progress,
            tracker=tracker or ExtractionTracker(),
            seed=seed,
        )

    async def run_pass(
        self,
        store: EventStore,
        branch: BranchPosition,
        messages: Sequence[ChatMessage],
        *,
        tracker: ExtractionTracker | None = None,
        cancel: CancellationToken | None = None,
    ) -> PassResult:
        """Extract state changes for the message at ``branch`` and append them.

        The swipe is only selected when the pass commits, so an aborted pass
        leaves swipe selection and snapshots untouched.

        Raises:
            NoActiveBranch: If the branch was truncated or abandoned mid-pass.
            DuplicateEventError: If the store already holds one of the events.
            ValueError: If ``branch`` is at or before the seed message.
        """
        initial = store.initial_snapshot
        if initial is not None and branch.message_id <= initial.source.message_id:
            raise ValueError(
                f"{branch} is at or before the seed message {initial.source.message_id}; "
                "re-run initialization instead"
            )

        generation = store.generation
        ctx = self._context(store, branch, messages, tracker, cancel)
        log.info("pass_started", branch=str(branch), messages=len(messages))

        errors = await self._run_sections(ctx, self.sections)
        if ctx.cancel.cancelled:
            log.info("pass_aborted", branch=str(branch), pending_events=len(ctx.turn))
            return PassResult(errors=errors, aborted=True, tracker=tracker)

        cut = store.invalidated_since(generation)
        if cut is not None and cut <= branch.message_id:
            raise NoActiveBranch(f"Branch {branch} was truncated or abandoned during the pass")

        events = ctx.turn.events
        store.select_swipe(branch)
        committed = store.append(branch, events)

        chapter_ends = [e for e in events if isinstance(e, ChapterEnded)]
        if chapter_ends:
            snapshot = store.project(branch).to_snapshot("chapter", chapter_ends[-1].chapter_index)
            store.add_chapter_snapshot(snapshot)

        log.info(
            "pass_committed",
            branch=str(branch),
            events=committed,
            errors=len(errors),
        )
        return PassResult(
            events=events,
            errors=errors,
            committed=committed,
            tracker=ctx.tracker,
        )

    async def initialize(
        self,
        store: EventStore,
        branch: BranchPosition,
        messages: Sequence[ChatMessage],
        *,
        tracker: ExtractionTracker | None = None,
        cancel: CancellationToken | None = None,
    ) -> PassResult:
        """Build and store the initial snapshot for a chat.

        Seeding sections run against an empty state; their events are folded
        into the snapshot rather than appended to the log.
        """
        base = Snapshot(type="initial", source=branch)
        ctx = self._context(store, branch, messages, tracker, cancel, seed=base)
        log.info("initialization_started", branch=str(branch))

        errors = await self._run_sections(ctx, [s for s in self.sections if s.seeds])
        if ctx.cancel.cancelled:
            log.info("initialization_aborted", branch=str(branch))
            return PassResult(errors=errors, aborted=True, tracker=tracker)

        snapshot = ctx.project().to_snapshot("initial")
        store.replace_initial_snapshot(snapshot)
        log.info(
            "store_initialized",
            branch=str(branch),
            events_folded=len(ctx.turn),
            characters=len(snapshot.characters_present),
        )
        return PassResult(
            events=ctx.turn.events,
            errors=errors,
            tracker=ctx.tracker,
            snapshot=snapshot,
        )

    async def _run_sections(
        self,
        ctx: RunContext,
        sections: Sequence[Section],
    ) -> list[ExtractorFailure]:
        errors: list[ExtractorFailure] = []
        for section in sections:
            if ctx.cancel.cancelled:
                break
            ctx.progress.section_started(section.name, len(section.extractors))
            for extractor in section.extractors:
                if ctx.cancel.cancelled:
                    break
                # Evaluated lazily: earlier extractors may have produced the triggering events
                if not extractor.should_run(ctx):
                    continue
                ctx.progress.step(section.name, extractor.name)
                await self._run_extractor(ctx, extractor, errors)
            ctx.progress.section_completed(section.name)
        return errors

    def _units(self, ctx: RunContext, extractor: Extractor) -> list[tuple[object, ...]]:
        """Argument tuples for each run of ``extractor``, according to its shape."""
        if extractor.shape == "global":
            return [()]
        try:
            projection = ctx.project()
        except NoSnapshotError:
            return []
        if extractor.shape == "per_character":
            names = extractor.characters(ctx, projection)  # type: ignore[attr-defined]
            return [(name,) for name in names]
        if extractor.shape == "per_pair":
            pairs = extractor.pairs(ctx, projection)  # type: ignore[attr-defined]
            return [(pair,) for pair in pairs]
        raise ValueError(f"Unknown extractor shape: {extractor.shape}")

    async def _run_extractor(
        self,
        ctx: RunContext,
        extractor: Extractor,
        errors: list[ExtractorFailure],
    ) -> None:
        units = self._units(ctx, extractor)
        semaphore = asyncio.Semaphore(self.settings.max_fanout_concurrency)

        async def run_unit(unit: tuple[object, ...]) -> list[BaseEvent]:
            async with semaphore:
                if ctx.cancel.cancelled:
                    return []
                try:
                    return await extractor.run(ctx, *unit)  # type: ignore[attr-defined]
                except (GenerationCancelled, NoSnapshotError):
                    return []
                except Exception as e:
                    log.exception(
                        "extractor_failed",
                        extractor=extractor.name,
                        unit=_describe_unit(unit),
                    )
                    errors.append(
                        ExtractorFailure(
                            extractor=extractor.name,
                            unit=_describe_unit(unit),
                            error=str(e) or type(e).__name__,
                        )
                    )
                    return []

        batches = await asyncio.gather(*(run_unit(unit) for unit in units))
        if ctx.cancel.cancelled:
            return

        produced = False
        for batch in batches:
            if batch:
                await ctx.turn.commit(batch)
                produced = True
        ctx.tracker.record(extractor.name, ctx.message_id, produced)
