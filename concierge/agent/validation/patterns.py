"""
Regex intent families used for tool selection and response validation.

All heuristics are English-only.
"""

import re
from typing import Dict, List, Pattern


def _compile(patterns: List[str]) -> List[Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


def matches_any(patterns: List[Pattern], text: str) -> bool:
    return any(p.search(text) for p in patterns)


# --- Primary intent families ---

# An explicit "number operator number" expression or "N% of M".
STRONG_MATH = _compile(
    [
        r"\d+(?:\.\d+)?\s*(?:[+\-*/×÷^]|\bx\b)\s*\d",
        r"\d+(?:\.\d+)?\s*%\s*of\s*\$?\d",
        r"\d+(?:\.\d+)?\s*percent\s+of\s*\$?\d",
    ]
)

MATH = STRONG_MATH + _compile(
    [
        r"\b(calculate|compute|calculator)\b",
        r"\b(plus|minus|times|divided by|multiplied by|square root|squared)\b",
        r"\b(percent(age)?|tip)\b.*\d",
        r"\bhow much is \d",
    ]
)

WEATHER_KEYWORDS = frozenset({"weather", "forecast", "temperature"})

WEATHER_CONTEXTUAL = _compile(
    [
        r"\b(is it|will it|going to)\s+(rain|snow|be (cold|hot|warm|sunny|cloudy|windy))",
        r"\b(rain|snow)\s+(today|tomorrow|tonight|this week|later)",
        r"\bdo i need\s+(an?\s+)?(umbrella|jacket|coat)\b",
        r"\b(how('s| is) the weather|what('s| is) the (weather|temperature|forecast))\b",
    ]
)

WEATHER_LOCATION = re.compile(
    r"(?:weather|forecast|temperature)\s+(?:in|for|at)\s+(.+?)(?:\?|$|\.)",
    re.IGNORECASE,
)

CALENDAR = _compile(
    [
        r"\b(what('s| is|'re| are)\s+(on\s+)?(my\s+)?(calendar|schedule|agenda))\b",
        r"\b(schedule|meeting|appointment)\b",
        r"\b(am i|are we)\s+(busy|free|available)\b",
        r"\b(at \d{1,2}(:\d{2})?\s*(am|pm))\b",
        r"\b(next (monday|tuesday|wednesday|thursday|friday|saturday|sunday))\b",
        r"\b(do i have)\s+.{0,20}\b(today|tomorrow|tonight|this week)\b",
        r"\b(calendar|agenda)\b",
        r"\b(create|add|book)\s+(an?\s+)?event\b",
    ]
)

REMINDERS = _compile(
    [
        r"\bremind me\b",
        r"\breminders?\b",
        r"\bto-?do( list)?\b",
        r"\bdon'?t (let me )?forget\b",
    ]
)

# --- Auxiliary tool triggers (no restriction, but never "conversational") ---

TOOL_TRIGGERS = _compile(
    [
        r"https?://\S+",
        r"\bwww\.\S+",
        r"\b(contact|phone number|email address)\b",
        r"\b(where am i|my location|current location|nearby)\b",
        r"\bremember (that|this|my)\b",
    ]
)

# --- Conversational family ---

CONVERSATIONAL = _compile(
    [
        r"^\s*(hi|hello|hey|howdy|yo|hiya|good (morning|afternoon|evening))\b",
        r"\bhow are you\b",
        r"\bwhat can you do\b",
        r"\bwhat are you\b",
        r"\bwho are you\b",
        r"\bwhat (tools|features|capabilities) do you have\b",
        r"\bhelp me\s*\??\s*$",
        r"^\s*(thanks|thank you|thx|cheers|ok|okay|cool|great|nice|awesome)\b",
        r"^\s*(bye|goodbye|see you|good night|later)\b",
    ]
)

# --- Creative / open-ended generation ---

CREATIVE_WRITING = _compile(
    [
        r"\b(tell|write|make up|compose|create)\b.{0,20}\b(story|stories|tale|poem|poetry|song|lyrics|haiku|limerick|sonnet|fan ?fiction|novel|script|rap)\b",
        r"\bonce upon a time\b",
        r"\bimagine (a|an|that|if)\b",
        r"\bpretend (you are|you're|to be)\b",
        r"\b(role-?play|roleplay)\b",
        r"\bbedtime story\b",
    ]
)

# --- Coherence vocabulary ---

# Phrases that have no place in an answer to a math question.
MATH_IRRELEVANT = _compile(
    [
        r"\b(calendar|schedule[ds]?|appointment|meeting|event)\b",
        r"\b(weather|forecast|temperature|rain|sunny)\b",
        r"\b(contact|phone number|email address)\b",
        r"\b(location|directions|nearby)\b",
        r"\b(reminder|remind)\b",
    ]
)

# First-person claims of having performed an action.
ACTION_CLAIMS = _compile(
    [
        r"\bi(?:'ve| have)?\s+(created|scheduled|added|set|deleted|removed|sent|booked|saved|updated|cancell?ed)\b",
        r"\b(has|have) been (created|scheduled|added|set|deleted|removed|sent|booked|saved|updated|cancell?ed)\b",
        r"\b(reminder|event|message|email|appointment) (is|was) (created|scheduled|added|set|sent|saved)\b",
    ]
)

REFUSAL_PHRASES = (
    "i cannot fulfill",
    "i can't fulfill",
    "i'm not able to",
    "i am not able to",
    "i cannot help with",
    "i can't help with",
    "i'm unable to",
    "i am unable to",
    "i cannot assist",
    "i can't assist",
    "sorry, but i cannot",
    "sorry, but i can't",
    "i'm sorry, but i cannot",
    "i'm sorry, but i can't",
)


def matches_weather(text: str) -> bool:
    words = set(re.findall(r"[a-z0-9]+", text.lower()))
    if words & WEATHER_KEYWORDS:
        return True
    return matches_any(WEATHER_CONTEXTUAL, text)


def matches_calendar(text: str) -> bool:
    return matches_any(CALENDAR, text)


def matches_math(text: str) -> bool:
    return matches_any(MATH, text)


def matches_strong_math(text: str) -> bool:
    return matches_any(STRONG_MATH, text)


def matches_reminders(text: str) -> bool:
    return matches_any(REMINDERS, text)


def extract_weather_location(text: str) -> str:
    """Location from "weather in <place>" phrasing, or "" if absent."""
    match = WEATHER_LOCATION.search(text)
    return match.group(1).strip() if match else ""


# Primary family -> tool name
INTENT_FAMILIES: Dict[str, object] = {
    "calculator": matches_math,
    "calendar": matches_calendar,
    "weather": matches_weather,
    "reminders": matches_reminders,
}
