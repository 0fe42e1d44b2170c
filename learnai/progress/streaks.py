"""
Streak calculation.

A streak is the number of consecutive calendar days with learning
activity. Each ``DailyActivity`` row snapshots the streak length on the
day it was created, so the current streak is read from today's or
yesterday's row rather than recounted.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, List, Optional

from learnai.progress.models import DailyActivity

STREAK_HISTORY_DAYS = 30


@dataclass(frozen=True)
class StreakMilestone:
    days: int
    name: str
    emoji: str


@dataclass(frozen=True)
class MilestoneStatus:
    """A milestone hit exactly today, or the next one still ahead."""
    milestone: StreakMilestone
    is_approaching: bool = False
    days_remaining: int = 0

    def to_dict(self):
        return {
            'days': self.milestone.days,
            'name': self.milestone.name,
            'emoji': self.milestone.emoji,
            'is_approaching': self.is_approaching,
            'days_remaining': self.days_remaining,
        }


MILESTONES: List[StreakMilestone] = [
    StreakMilestone(1, "First Day", "\U0001F389"),
    StreakMilestone(3, "3-Day Streak", "\U0001F525"),
    StreakMilestone(7, "Week Warrior", "\u2b50"),
    StreakMilestone(14, "Two Week Champion", "\U0001F3C6"),
    StreakMilestone(30, "Monthly Master", "\U0001F451"),
    StreakMilestone(60, "Two Month Legend", "\U0001F48E"),
    StreakMilestone(100, "Century Club", "\U0001F31F"),
    StreakMilestone(365, "Year Champion", "\U0001F38A"),
]


def recent_history(activity_history: Iterable[DailyActivity], limit: int = STREAK_HISTORY_DAYS) -> List[DailyActivity]:
    """The ``limit`` most recent records, newest first."""
    return sorted(activity_history, key=lambda a: a.activity_date, reverse=True)[:limit]


def calculate_streak(activity_history: Iterable[DailyActivity], today: date) -> int:
    """
    Current streak as of ``today``.

    Today's record gives the streak directly. Without one, yesterday's
    record keeps the streak alive until today ends; with neither the
    streak is 0.
    """
    by_date = {activity.activity_date: activity for activity in recent_history(activity_history)}

    todays = by_date.get(today)
    if todays is not None:
        return todays.streak_day

    yesterdays = by_date.get(today - timedelta(days=1))
    if yesterdays is not None:
        return yesterdays.streak_day

    return 0


def next_streak_day(activity_history: Iterable[DailyActivity], today: date) -> int:
    """``streak_day`` for a record being created today."""
    return calculate_streak(activity_history, today) + 1


def longest_streak(activity_history: Iterable[DailyActivity]) -> int:
    return max((activity.streak_day for activity in activity_history), default=0)


def get_streak_milestone(streak: int) -> Optional[MilestoneStatus]:
    """
    Milestone information for a streak length.

    Returns the milestone when ``streak`` lands exactly on one, otherwise
    the next milestone with the days remaining, or None past the last one.
    """
    for milestone in MILESTONES:
        if milestone.days == streak:
            return MilestoneStatus(milestone)
    for milestone in MILESTONES:
        if milestone.days > streak:
            return MilestoneStatus(milestone, is_approaching=True, days_remaining=milestone.days - streak)
    return None
