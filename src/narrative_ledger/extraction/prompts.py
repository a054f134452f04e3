# ABOUTME: Prompt templates for every extractor sent to the text generator.
# ABOUTME: Each template has a system prompt and a user template filled from projection state.

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class PromptTemplate:
    """System instructions plus a user message template with ``{placeholders}``."""

    name: str
    system: str
    user: str


_PLACEHOLDER = re.compile(r"\{([a-z_]+)\}")


def render(template: str, values: dict[str, object]) -> str:
    """Fill ``{placeholder}`` names, leaving JSON braces and unknown names untouched."""

    def substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in values:
            return match.group(0)
        value = values[key]
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(substitute, template)


JSON_ONLY = "Respond with a single JSON object and nothing else."

_STATE_AND_MESSAGES = """Current state:
{state}

Recent messages:
{messages}
"""

TIME_INITIAL = PromptTemplate(
    name="time_initial",
    system=f"""You determine the in-story date and time of a roleplay scene.
If the text never states it, infer a plausible date and time from context.
{JSON_ONLY}
Schema: {{"time": "YYYY-MM-DDTHH:MM:SS"}}""",
    user=_STATE_AND_MESSAGES,
)

TIME_CHANGE = PromptTemplate(
    name="time_change",
    system=f"""You track how much in-story time passes between messages.
Only report time that clearly elapsed in the newest messages. Small exchanges
of dialogue take a minute or two.
{JSON_ONLY}
Schema: {{"changed": bool, "days": int, "hours": int, "minutes": int, "seconds": int}}""",
    user=_STATE_AND_MESSAGES,
)

LOCATION_CHANGE = PromptTemplate(
    name="location_change",
    system=f"""You track where the scene takes place.
Report a change only when the characters actually moved. "area" is the
region or city, "place" the building or site, "position" the spot within it.
location_type is one of: outdoor, modern, heated, unheated, underground, tent, vehicle.
{JSON_ONLY}
Schema: {{"changed": bool, "area": str, "place": str, "position": str, "location_type": str}}""",
    user=_STATE_AND_MESSAGES,
)

CLIMATE = PromptTemplate(
    name="climate",
    system=f"""You describe the weather the characters experience right now,
consistent with the date, time, and location.
{JSON_ONLY}
Schema: {{"conditions": str, "temperature": float (Celsius)}}""",
    user=_STATE_AND_MESSAGES,
)

TOPIC_TONE = PromptTemplate(
    name="topic_tone",
    system=f"""You summarize what the current scene is about.
"topic" is 2-5 words naming the subject; "tone" is 1-3 words naming the mood.
{JSON_ONLY}
Schema: {{"topic": str, "tone": str}}""",
    user=_STATE_AND_MESSAGES,
)

TENSION = PromptTemplate(
    name="tension",
    system=f"""You rate the dramatic tension of the scene.
level is one of: relaxed, aware, guarded, tense, charged, volatile, explosive.
type is one of: confrontation, intimate, vulnerable, celebratory, negotiation, suspense, conversation.
{JSON_ONLY}
Schema: {{"level": str, "type": str}}""",
    user=_STATE_AND_MESSAGES,
)

PRESENCE = PromptTemplate(
    name="presence",
    system=f"""You track which characters are physically present in the scene.
List characters who newly arrived under "appeared" and characters who left
under "departed". Never list someone as appeared who is already present.
{JSON_ONLY}
Schema: {{"appeared": [{{"name": str, "position": str, "activity": str,
"mood": [str], "physical_state": [str]}}], "departed": [str]}}""",
    user=_STATE_AND_MESSAGES,
)

PROFILE = PromptTemplate(
    name="profile",
    system=f"""You write a short profile of a character who just appeared.
sex is M, F, or O. appearance and personality are 4-10 short tags each.
{JSON_ONLY}
Schema: {{"sex": str, "species": str, "age": int, "appearance": [str], "personality": [str]}}""",
    user="""Character: {character}

{messages}
""",
)

POSITION_ACTIVITY = PromptTemplate(
    name="position_activity",
    system=f"""You track where a character is within the scene and what they are doing.
Set activity_changed to true only if their activity changed; use null activity
when they stopped doing anything in particular.
{JSON_ONLY}
Schema: {{"position": str | null, "activity": str | null, "activity_changed": bool}}""",
    user="""Character: {character}
{character_state}

Recent messages:
{messages}
""",
)

MOOD_PHYSICAL = PromptTemplate(
    name="mood_physical",
    system=f"""You track a character's moods and physical states (e.g. "tired",
"injured arm"). Report only changes: values to add and values that no longer apply.
{JSON_ONLY}
Schema: {{"mood": {{"added": [str], "removed": [str]}},
"physical_state": {{"added": [str], "removed": [str]}}}}""",
    user=POSITION_ACTIVITY.user,
)

OUTFIT = PromptTemplate(
    name="outfit",
    system=f"""You track what a character wears in these slots:
head, neck, jacket, back, torso, legs, footwear, socks, underwear.
Under "added" map a slot to the item now worn there; under "removed" list
slots that became empty.
{JSON_ONLY}
Schema: {{"added": {{slot: str}}, "removed": [slot]}}""",
    user=POSITION_ACTIVITY.user,
)

CHARACTER_CONSOLIDATION = PromptTemplate(
    name="character_consolidation",
    system=f"""You clean up a character's mood and physical state lists.
Merge synonyms and near-duplicates, drop states that no longer apply, and
keep between 2 and 5 entries per list.
{JSON_ONLY}
Schema: {{"mood": [str], "physical_state": [str]}}""",
    user=POSITION_ACTIVITY.user,
)

PROPS_CHANGE = PromptTemplate(
    name="props_change",
    system=f"""You track notable objects in the scene (furniture, items, vehicles).
Report props that appeared and props that are gone. Never list clothing
someone is wearing.
{JSON_ONLY}
Schema: {{"added": [str], "removed": [str]}}""",
    user=_STATE_AND_MESSAGES,
)

PROPS_CONFIRMATION = PromptTemplate(
    name="props_confirmation",
    system=f"""You verify the scene's prop list. Return only props that really
belong to the current location. Exclude clothing currently worn by characters
and anything that has left the scene.
{JSON_ONLY}
Schema: {{"props": [str]}}""",
    user="""Proposed props:
{props}

Worn clothing:
{outfits}

Recent messages:
{messages}
""",
)

SUBJECTS = PromptTemplate(
    name="subjects",
    system=f"""You detect meaningful interactions between pairs of present characters.
Use snake_case subjects such as: laugh, gift, shared_meal, compliment, tease,
helped, confession, secret_shared, comfort, defended, vulnerability,
intimate_kiss, date, i_love_you, argument, betrayal, apology, first_meeting.
{JSON_ONLY}
Schema: {{"interactions": [{{"pair": [str, str], "subject": str}}]}}""",
    user=_STATE_AND_MESSAGES,
)

ATTITUDE = PromptTemplate(
    name="attitude",
    system=f"""You track the {{field}} two characters hold toward each other.
"a_to_b" is what {{a}} holds toward {{b}}; "b_to_a" the reverse. Report only
changes: entries to add and entries that no longer apply.
{JSON_ONLY}
Schema: {{"a_to_b": {{"added": [str], "removed": [str]}}, "b_to_a": {{"added": [str], "removed": [str]}}}}""",
    user="""Pair: {a} and {b}
{relationship}

Recent messages:
{messages}
""",
)

STATUS = PromptTemplate(
    name="status",
    system=f"""You judge the overall status of a relationship. status is one of:
hostile, strained, strangers, acquaintances, friendly, close, intimate, complicated.
{JSON_ONLY}
Schema: {{"status": str}}""",
    user=ATTITUDE.user,
)

ATTITUDE_CONSOLIDATION = PromptTemplate(
    name="attitude_consolidation",
    system=f"""You clean up what one character feels toward and wants from another.
Merge synonyms and near-duplicates, drop entries that no longer apply, and
keep between 2 and 5 entries per list.
{JSON_ONLY}
Schema: {{"feelings": [str], "wants": [str]}}""",
    user="""{from_character} toward {toward_character}
Feelings: {feelings}
Wants: {wants}

Recent messages:
{messages}
""",
)

NARRATIVE = PromptTemplate(
    name="narrative",
    system=f"""You write a one or two sentence summary of what just happened in the
story, in past tense. Use null when nothing noteworthy happened.
{JSON_ONLY}
Schema: {{"description": str | null}}""",
    user=_STATE_AND_MESSAGES,
)

MILESTONE = PromptTemplate(
    name="milestone",
    system=f"""You describe a relationship milestone in one sentence, in past tense,
naming both characters.
{JSON_ONLY}
Schema: {{"description": str}}""",
    user="""Milestone: {subject} between {a} and {b}
Location: {location}

Recent messages:
{messages}
""",
)

CHAPTER_ENDED = PromptTemplate(
    name="chapter_ended",
    system=f"""You decide whether the story reached a natural chapter break after a
location change or a time jump. reason is one of: location_change, time_jump, both.
{JSON_ONLY}
Schema: {{"ended": bool, "reason": str}}""",
    user=_STATE_AND_MESSAGES,
)

CHAPTER_DESCRIPTION = PromptTemplate(
    name="chapter_description",
    system=f"""You title and summarize a finished chapter of the story.
The title is 2-6 words; the summary 2-4 sentences.
{JSON_ONLY}
Schema: {{"title": str, "summary": str}}""",
    user=_STATE_AND_MESSAGES,
)
