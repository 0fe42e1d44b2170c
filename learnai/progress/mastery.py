"""
Mastery calculation and strength/weakness classification.

Pure functions that turn the result of a learning session into an updated
topic mastery score and updated strength/weakness concept lists.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from learnai.common.utils import clamp

MIN_PROBLEMS_FOR_FULL_UPDATE = 3
PRIOR_WEIGHT = 0.7
SESSION_WEIGHT = 0.3
PARTIAL_CREDIT_WEIGHT = 0.1

MAX_MASTERY = 100.0
MASTERED_THRESHOLD = 80.0

STRENGTH_ACCURACY = 80.0
WEAKNESS_ACCURACY = 60.0
MAX_CONCEPTS = 5


def calculate_mastery_level(
    prior_mastery: float,
    session_accuracy: float,
    problems_attempted: int,
    problems_correct: int = 0
) -> float:
    """
    Smooth a topic's mastery with the accuracy of the latest session.

    Sessions with at least three problems blend 70% prior mastery with 30%
    session accuracy. Smaller sessions only nudge mastery upward by a tenth
    of their accuracy. Empty sessions leave mastery unchanged.

    Args:
        prior_mastery: Current mastery (0-100)
        session_accuracy: Accuracy of the session (0-100)
        problems_attempted: Number of problems tried in the session
        problems_correct: Number answered correctly (informational)

    Returns:
        The new mastery level (0-100)
    """
    if problems_attempted >= MIN_PROBLEMS_FOR_FULL_UPDATE:
        return clamp(prior_mastery * PRIOR_WEIGHT + session_accuracy * SESSION_WEIGHT, 0.0, MAX_MASTERY)
    if problems_attempted > 0:
        return min(MAX_MASTERY, prior_mastery + session_accuracy * PARTIAL_CREDIT_WEIGHT)
    return prior_mastery


def mastery_fraction(mastery_level: Optional[float]) -> float:
    """Convert a stored 0-100 mastery level to the 0-1 scale used for path thresholds."""
    if not mastery_level:
        return 0.0
    return clamp(mastery_level / MAX_MASTERY, 0.0, 1.0)


@dataclass
class ConceptClassification:
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)


def _keep_newest(items: List[str], limit: int) -> List[str]:
    # Entries are stored oldest first, overflow drops from the front.
    if len(items) <= limit:
        return items
    return items[len(items) - limit:]


def update_strengths_weaknesses(
    existing: ConceptClassification,
    accuracy: float,
    concepts: Iterable[str],
    limit: int = MAX_CONCEPTS
) -> ConceptClassification:
    """
    Reclassify the concepts practiced in a session.

    High accuracy promotes each concept to the newest strength and clears
    it from the weaknesses. Low accuracy records a weakness unless the
    concept is already a strength. Middling accuracy changes nothing. Both
    lists are bounded to ``limit`` entries, evicting the oldest first.

    The input classification is not modified.
    """
    strengths = list(existing.strengths)
    weaknesses = list(existing.weaknesses)
    concepts: Sequence[str] = list(concepts)

    if accuracy >= STRENGTH_ACCURACY:
        for concept in concepts:
            if concept in strengths:
                strengths.remove(concept)
            strengths.append(concept)
            if concept in weaknesses:
                weaknesses.remove(concept)
    elif accuracy < WEAKNESS_ACCURACY:
        for concept in concepts:
            if concept not in strengths and concept not in weaknesses:
                weaknesses.append(concept)

    return ConceptClassification(
        strengths=_keep_newest(strengths, limit),
        weaknesses=_keep_newest(weaknesses, limit),
    )
