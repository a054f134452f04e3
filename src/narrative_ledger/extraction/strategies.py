# ABOUTME: Run and message-window strategies deciding when extractors fire and what they read.
# ABOUTME: Closed, serializable pydantic variants plus a declarative custom-condition escape hatch.

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Annotated, Literal, Union

from pydantic import BaseModel, Field

from narrative_ledger.state.events import (
    BaseEvent,
    BranchPosition,
    EventKindFilter,
    LocationMoved,
    TimeDelta,
    matches_any,
)

if TYPE_CHECKING:
    from narrative_ledger.state.store import EventStore


# Custom conditions


class TurnHasEventOfKind(BaseModel):
    """True when this turn already produced a matching event."""

    check: Literal["turn_has_event_of_kind"] = "turn_has_event_of_kind"
    kinds: list[EventKindFilter]


class LocationMovedOrTimeJump(BaseModel):
    """True when this turn moved location or skipped a significant span of time."""

    check: Literal["location_moved_or_time_jump"] = "location_moved_or_time_jump"
    min_hours: int = 6
    min_days: int = 1


class MessageIdAtLeast(BaseModel):
    check: Literal["message_id_at_least"] = "message_id_at_least"
    n: int


class AllOf(BaseModel):
    check: Literal["all_of"] = "all_of"
    conditions: list["CustomCondition"]


class AnyOf(BaseModel):
    check: Literal["any_of"] = "any_of"
    conditions: list["CustomCondition"]


CustomCondition = Annotated[
    Union[TurnHasEventOfKind, LocationMovedOrTimeJump, MessageIdAtLeast, AllOf, AnyOf],
    Field(discriminator="check"),
]

AllOf.model_rebuild()
AnyOf.model_rebuild()


# Run strategies


class EveryMessage(BaseModel):
    strategy: Literal["every_message"] = "every_message"


class EveryUserMessage(BaseModel):
    strategy: Literal["every_user_message"] = "every_user_message"


class EveryAssistantMessage(BaseModel):
    strategy: Literal["every_assistant_message"] = "every_assistant_message"


class EveryNMessages(BaseModel):
    """Fires when ``(message_id - offset) % n == 0``."""

    strategy: Literal["every_n_messages"] = "every_n_messages"
    n: int = Field(ge=1)
    offset: int = 0


class NSinceLastProduced(BaseModel):
    """Fires once at least ``n`` messages passed since this extractor last produced events."""

    strategy: Literal["n_since_last_produced"] = "n_since_last_produced"
    n: int = Field(ge=1)


class NSinceLastEventOfKind(BaseModel):
    """Fires once at least ``n`` messages passed since a matching committed event."""

    strategy: Literal["n_since_last_event_of_kind"] = "n_since_last_event_of_kind"
    n: int = Field(ge=1)
    kinds: list[EventKindFilter]


class NewEventsOfKind(BaseModel):
    """Fires when this turn produced a matching event."""

    strategy: Literal["new_events_of_kind"] = "new_events_of_kind"
    kinds: list[EventKindFilter]


class CustomRun(BaseModel):
    strategy: Literal["custom"] = "custom"
    condition: CustomCondition


RunStrategy = Annotated[
    Union[
        EveryMessage,
        EveryUserMessage,
        EveryAssistantMessage,
        EveryNMessages,
        NSinceLastProduced,
        NSinceLastEventOfKind,
        NewEventsOfKind,
        CustomRun,
    ],
    Field(discriminator="strategy"),
]


# Message strategies


class FixedNumber(BaseModel):
    """The last ``n`` messages, ending at the current one."""

    strategy: Literal["fixed_number"] = "fixed_number"
    n: int = Field(ge=1)


class SinceLastEventOfKind(BaseModel):
    """Messages back to (and including) the last matching event."""

    strategy: Literal["since_last_event_of_kind"] = "since_last_event_of_kind"
    kinds: list[EventKindFilter]


class CustomWindow(BaseModel):
    """Window since the last matching event, clamped to ``[min_messages, max_messages]``."""

    strategy: Literal["custom"] = "custom"
    description: str = ""
    kinds: list[EventKindFilter] = Field(default_factory=list)
    min_messages: int = Field(default=1, ge=1)
    max_messages: int = Field(default=10, ge=1)


MessageStrategy = Annotated[
    Union[FixedNumber, SinceLastEventOfKind, CustomWindow],
    Field(discriminator="strategy"),
]


@dataclass
class RunStrategyContext:
    """Inputs a run strategy may inspect."""

    store: "EventStore"
    branch: BranchPosition
    turn_events: Sequence[BaseEvent]
    is_user_message: bool = False
    produced_at: list[int] = field(default_factory=list)

    @property
    def message_id(self) -> int:
        return self.branch.message_id


def _has_turn_event(ctx: RunStrategyContext, kinds: list[EventKindFilter]) -> bool:
    return any(matches_any(e, kinds) for e in ctx.turn_events)


def evaluate_condition(condition: CustomCondition, ctx: RunStrategyContext) -> bool:
    if isinstance(condition, TurnHasEventOfKind):
        return _has_turn_event(ctx, condition.kinds)
    if isinstance(condition, LocationMovedOrTimeJump):
        for event in ctx.turn_events:
            if isinstance(event, LocationMoved):
                return True
            if isinstance(event, TimeDelta) and (
                event.hours >= condition.min_hours or event.days >= condition.min_days
            ):
                return True
        return False
    if isinstance(condition, MessageIdAtLeast):
        return ctx.message_id >= condition.n
    if isinstance(condition, AllOf):
        return all(evaluate_condition(c, ctx) for c in condition.conditions)
    if isinstance(condition, AnyOf):
        return any(evaluate_condition(c, ctx) for c in condition.conditions)
    raise ValueError(f"Unknown custom condition: {condition!r}")


def evaluate_run_strategy(strategy: RunStrategy, ctx: RunStrategyContext) -> bool:
    """Decide whether an extractor fires for the current message."""
    if isinstance(strategy, EveryMessage):
        return True
    if isinstance(strategy, EveryUserMessage):
        return ctx.is_user_message
    if isinstance(strategy, EveryAssistantMessage):
        return not ctx.is_user_message
    if isinstance(strategy, EveryNMessages):
        return (ctx.message_id - strategy.offset) % strategy.n == 0
    if isinstance(strategy, NSinceLastProduced):
        last = max((m for m in ctx.produced_at if m < ctx.message_id), default=None)
        return last is None or ctx.message_id - last >= strategy.n
    if isinstance(strategy, NSinceLastEventOfKind):
        last = ctx.store.last_event_message(ctx.branch, strategy.kinds)
        return last is None or ctx.message_id - last >= strategy.n
    if isinstance(strategy, NewEventsOfKind):
        return _has_turn_event(ctx, strategy.kinds)
    if isinstance(strategy, CustomRun):
        return evaluate_condition(strategy.condition, ctx)
    raise ValueError(f"Unknown run strategy: {strategy!r}")


def message_count(strategy: MessageStrategy, store: "EventStore", branch: BranchPosition) -> int:
    """Number of chat messages, ending at ``branch``, to show the generator."""
    if isinstance(strategy, FixedNumber):
        return strategy.n

    last = store.last_event_message(branch, strategy.kinds) if strategy.kinds else None
    span = branch.message_id + 1 if last is None else branch.message_id - last + 1
    if isinstance(strategy, SinceLastEventOfKind):
        return span
    return max(strategy.min_messages, min(strategy.max_messages, span))
