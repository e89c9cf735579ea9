"""
Diversity Selector

Picks a concrete content type for a requested category while avoiding the
types produced most recently.
"""

import random
from typing import Optional, Sequence

from tutor.models.lesson_plan import RECENT_CONTENT_WINDOW


CATEGORY_CANDIDATES: dict[str, tuple[str, ...]] = {
    "next_question": (
        "multiple-choice", "progress-quiz", "fill-blank", "concept-card", "explainer",
    ),
    "next_exercise": (
        "step-solver", "drag-drop", "text-highlighter", "progress-quiz",
        "multiple-choice", "concept-card", "fill-blank",
    ),
    "next_problem": (
        "step-solver", "progress-quiz", "multiple-choice", "fill-blank", "concept-card", "explainer",
    ),
    "practice": (
        "multiple-choice", "fill-blank", "drag-drop", "step-solver", "concept-card",
        "interactive-example", "formula-explorer", "graph-visualizer", "text-highlighter",
    ),
}

DEFAULT_CANDIDATES: tuple[str, ...] = (
    "progress-quiz", "multiple-choice", "step-solver", "concept-card", "explainer", "fill-blank",
)


def candidates_for(category: Optional[str]) -> tuple[str, ...]:
    return CATEGORY_CANDIDATES.get((category or "").strip().lower(), DEFAULT_CANDIDATES)


def select_type(
    category: Optional[str],
    recent_types: Sequence[str] = (),
    rng: Optional[random.Random] = None,
) -> str:
    """
    Choose a type for `category`.

    Excludes every type in the last three of `recent_types`. When that
    leaves nothing, only the single most recent type is excluded, and when
    even that leaves nothing any candidate is allowed.
    """
    chooser = rng or random
    candidates = list(candidates_for(category))
    recent = list(recent_types)[-RECENT_CONTENT_WINDOW:]

    pool = [c for c in candidates if c not in recent]
    if not pool and recent:
        pool = [c for c in candidates if c != recent[-1]]
    if not pool:
        pool = candidates
    return chooser.choice(pool)
