"""
SM-2 spaced repetition scheduler.

Computes the next review of a concept from the quality (0-5) of the
latest recall. Scheduling state is the triple (ease factor, interval,
repetitions) kept on ``ConceptReview``; the scheduler itself is stateless.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from learnai.common.utils import clamp, round_half_up

INITIAL_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
INITIAL_INTERVAL = 1
SECOND_INTERVAL = 6
PASSING_QUALITY = 3
MAX_QUALITY = 5
MAX_COUNTED_REPETITIONS = 10


@dataclass(frozen=True)
class ReviewState:
    ease_factor: float = INITIAL_EASE_FACTOR
    interval: int = INITIAL_INTERVAL
    repetitions: int = 0


@dataclass(frozen=True)
class ScheduledReview:
    ease_factor: float
    interval: int
    repetitions: int
    next_review_date: datetime

    @property
    def state(self) -> ReviewState:
        return ReviewState(self.ease_factor, self.interval, self.repetitions)


class SpacedRepetitionScheduler:
    """SuperMemo-2 scheduling rules."""

    @staticmethod
    def clamp_quality(quality: float) -> float:
        return clamp(quality, 0, MAX_QUALITY)

    @staticmethod
    def update_ease_factor(ease_factor: float, quality: float) -> float:
        miss = MAX_QUALITY - quality
        return max(MIN_EASE_FACTOR, ease_factor + (0.1 - miss * (0.08 + miss * 0.02)))

    def next_review(self, state: ReviewState, quality: float, now: datetime) -> ScheduledReview:
        """
        Apply one review to ``state``.

        A failed recall (quality below 3) restarts the schedule at a one day
        interval. A successful one moves to 1 day, then 6 days, then grows
        the previous interval by the updated ease factor.
        """
        quality = self.clamp_quality(quality)
        ease_factor = self.update_ease_factor(state.ease_factor, quality)

        if quality < PASSING_QUALITY:
            interval = INITIAL_INTERVAL
            repetitions = 0
        else:
            if state.repetitions == 0:
                interval = INITIAL_INTERVAL
            elif state.repetitions == 1:
                interval = SECOND_INTERVAL
            else:
                interval = round_half_up(state.interval * ease_factor)
            repetitions = state.repetitions + 1

        return ScheduledReview(
            ease_factor=ease_factor,
            interval=interval,
            repetitions=repetitions,
            next_review_date=now + timedelta(days=interval),
        )

    @staticmethod
    def calculate_mastery(average_quality: float, repetitions: int, ease_factor: float) -> int:
        """
        Display score (0-100) of how well a concept is retained.

        Weighted blend of normalized average quality (50%), repetition count
        capped at ten (30%) and ease factor between 1.3 and 2.5 (20%).
        """
        quality_score = average_quality / MAX_QUALITY * 100
        repetition_score = min(100.0, repetitions / MAX_COUNTED_REPETITIONS * 100)
        ease_score = min(100.0, (ease_factor - MIN_EASE_FACTOR) / (INITIAL_EASE_FACTOR - MIN_EASE_FACTOR) * 100)

        score = quality_score * 0.5 + repetition_score * 0.3 + ease_score * 0.2
        return int(clamp(round_half_up(score), 0, 100))

    @staticmethod
    def days_overdue(next_review_date: datetime, now: datetime) -> int:
        return math.floor((now - next_review_date) / timedelta(days=1))

    @staticmethod
    def days_until(next_review_date: datetime, now: datetime) -> int:
        return math.ceil((next_review_date - now) / timedelta(days=1))

    @staticmethod
    def running_average(average: float, count: int, value: float) -> float:
        return (average * count + value) / (count + 1)
