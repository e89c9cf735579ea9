"""
Subject Classifier

Offline detection of a new-subject request in a raw learner message. Used by
the degraded fallback when the LLM cannot be reached.
"""

import re
from typing import Literal, Union
from pydantic import BaseModel, Field


class NoMatch(BaseModel):
    kind: Literal["no_match"] = "no_match"


class SubjectDetected(BaseModel):
    kind: Literal["subject_detected"] = "subject_detected"
    name: str = Field(min_length=1)
    confidence: float = Field(ge=0.0, le=1.0)


ClassificationResult = Union[NoMatch, SubjectDetected]


SPECIFIC_CONFIDENCE = 0.8
GENERIC_CONFIDENCE = 0.5

LEARN_PHRASE = re.compile(
    r"(?:i want to learn|help me with|let's learn|i'm interested in|teach me|learn|study|teach)"
    r"\s+([a-zA-Z0-9\s\-]+)$",
    re.IGNORECASE,
)
BARE_SUBJECT = re.compile(r"^[a-zA-Z][a-zA-Z0-9\s\-]{2,}$")
MAX_BARE_SUBJECT_WORDS = 4

KEYWORD_SUBJECTS: tuple[tuple[re.Pattern, str], ...] = tuple(
    (re.compile(pattern, re.IGNORECASE), subject)
    for pattern, subject in (
        (r"\b(social media|social networking|instagram|facebook|twitter|linkedin|tiktok|marketing)\b",
         "Social Media Management"),
        (r"\b(advertising|ads|google ads|facebook ads|ppc|sem|marketing campaigns)\b", "Digital Advertising"),
        (r"\b(math|maths|mathematics|algebra|calculus|geometry|statistics)\b", "Mathematics"),
        (r"\b(science|physics|chemistry|biology)\b", "Science"),
        (r"\b(history|historical)\b", "History"),
        (r"\b(english|literature|writing|grammar)\b", "English"),
        (r"\b(programming|coding|javascript|python|web development)\b", "Programming"),
        (r"\b(business|entrepreneurship|management|leadership)\b", "Business"),
        (r"\b(spanish|french|german|language)\b", "Language Learning"),
        (r"\b(art|design|drawing|painting)\b", "Art & Design"),
        (r"\b(music|piano|guitar|singing)\b", "Music"),
        (r"\b(cooking|recipe|recipes|culinary)\b", "Cooking"),
        (r"\b(fitness|exercise|workout|health)\b", "Health & Fitness"),
    )
)

# Conversational filler that looks like a bare subject but is not one.
NON_SUBJECT_PHRASES = frozenset({
    "hi", "hey", "hello", "hello there", "hi there", "thanks", "thank you", "ok", "okay",
    "yes", "no", "sure", "help", "help me", "what", "why", "how", "explain", "good morning",
    "good evening", "good afternoon", "bye", "goodbye",
})


def keyword_subject(message: str) -> str | None:
    """Canonical subject for the first keyword group the message mentions."""
    for pattern, subject in KEYWORD_SUBJECTS:
        if pattern.search(message):
            return subject
    return None


def classify_subject(message: str) -> ClassificationResult:
    """
    Detect a subject in `message`.

    Checked in order: an explicit "learn/study/teach me X" phrase, the
    curated keyword table, then a short bare subject-like phrase.
    """
    text = (message or "").strip().rstrip(".!?").strip()
    if not text or text.lower() in NON_SUBJECT_PHRASES:
        return NoMatch()

    match = LEARN_PHRASE.search(text)
    if match:
        name = match.group(1).strip(" -")
        if name and name.lower() not in NON_SUBJECT_PHRASES:
            confidence = SPECIFIC_CONFIDENCE if keyword_subject(name) else GENERIC_CONFIDENCE
            return SubjectDetected(name=name, confidence=confidence)

    subject = keyword_subject(text)
    if subject:
        return SubjectDetected(name=subject, confidence=SPECIFIC_CONFIDENCE)

    if BARE_SUBJECT.match(text) and len(text.split()) <= MAX_BARE_SUBJECT_WORDS:
        return SubjectDetected(name=text, confidence=GENERIC_CONFIDENCE)

    return NoMatch()
