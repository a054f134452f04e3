# ABOUTME: Concrete extractors and the default, fixed-order section registry.
# ABOUTME: The scheduler walks these sections in order on every pass.

from narrative_ledger.extraction.base import Section
from narrative_ledger.extraction.extractors.chapters import (
    ChapterDescriptionExtractor,
    ChapterEndedExtractor,
)
from narrative_ledger.extraction.extractors.characters import (
    CharacterConsolidationExtractor,
    MoodPhysicalExtractor,
    OutfitExtractor,
    PositionActivityExtractor,
    PresenceExtractor,
    ProfileExtractor,
)
from narrative_ledger.extraction.extractors.core import (
    ClimateExtractor,
    LocationExtractor,
    TensionExtractor,
    TimeExtractor,
    TopicToneExtractor,
)
from narrative_ledger.extraction.extractors.narrative import MilestoneExtractor, NarrativeExtractor
from narrative_ledger.extraction.extractors.props import (
    PropsChangeExtractor,
    PropsConfirmationExtractor,
)
from narrative_ledger.extraction.extractors.relationships import (
    AttitudeConsolidationExtractor,
    FeelingsExtractor,
    SecretsExtractor,
    StatusExtractor,
    SubjectsExtractor,
    WantsExtractor,
)


def default_sections() -> list[Section]:
    """Fresh extractor instances grouped in scheduling order."""
    return [
        Section(
            "core",
            [
                TimeExtractor(),
                LocationExtractor(),
                ClimateExtractor(),
                TopicToneExtractor(),
                TensionExtractor(),
            ],
            seeds=True,
        ),
        Section("presence", [PresenceExtractor(), ProfileExtractor()], seeds=True),
        Section(
            "characters",
            [PositionActivityExtractor(), MoodPhysicalExtractor(), OutfitExtractor()],
            seeds=True,
        ),
        Section("props", [PropsChangeExtractor(), PropsConfirmationExtractor()], seeds=True),
        Section("subjects", [SubjectsExtractor()]),
        Section(
            "relationships",
            [FeelingsExtractor(), SecretsExtractor(), WantsExtractor(), StatusExtractor()],
            seeds=True,
        ),
        Section(
            "consolidation",
            [CharacterConsolidationExtractor(), AttitudeConsolidationExtractor()],
        ),
        Section("narrative", [NarrativeExtractor(), MilestoneExtractor()]),
        Section("chapters", [ChapterEndedExtractor(), ChapterDescriptionExtractor()]),
    ]


__all__ = [
    "AttitudeConsolidationExtractor",
    "ChapterDescriptionExtractor",
    "ChapterEndedExtractor",
    "CharacterConsolidationExtractor",
    "ClimateExtractor",
    "FeelingsExtractor",
    "LocationExtractor",
    "MilestoneExtractor",
    "MoodPhysicalExtractor",
    "NarrativeExtractor",
    "OutfitExtractor",
    "PositionActivityExtractor",
    "PresenceExtractor",
    "ProfileExtractor",
    "PropsChangeExtractor",
    "PropsConfirmationExtractor",
    "SecretsExtractor",
    "StatusExtractor",
    "SubjectsExtractor",
    "TensionExtractor",
    "TimeExtractor",
    "TopicToneExtractor",
    "WantsExtractor",
    "default_sections",
]
