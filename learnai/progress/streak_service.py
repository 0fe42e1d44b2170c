"""
Streak Service

Daily engagement reporting built on the ``DailyActivity`` records written by
the progress tracker: streak status, milestones, weekly and monthly
engagement summaries and streak recovery hints.
"""

from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List

from learnai.common.logger import app_logger
from learnai.common.utils import round_half_up, safe_divide, utcnow

from .models import DailyActivity
from .repository import ActivityRepository
from .streaks import get_streak_milestone

logger = app_logger.getChild("progress.streak_service")


def _engagement_totals(activities: List[DailyActivity]) -> Dict[str, Any]:
    total_minutes = sum(a.minutes_learned for a in activities)
    days_active = sum(1 for a in activities if a.minutes_learned > 0)
    return {
        'total_minutes': total_minutes,
        'days_active': days_active,
        'average_minutes': round_half_up(safe_divide(total_minutes, days_active)),
    }


class StreakService:
    """Read-side streak and engagement queries for a student."""

    def __init__(self, activities: ActivityRepository, clock: Callable[[], datetime] = utcnow):
        self._activities = activities
        self._clock = clock

    def _today(self) -> date:
        return self._clock().date()

    async def get_streak_info(self, student_id: str) -> Dict[str, Any]:
        """
        Current streak status.

        Without activity today the current streak reads 0 and the streak is
        at risk when yesterday's record still carries one.
        """
        today = self._today()
        todays = await self._activities.get(student_id, today)
        longest = await self._activities.longest_streak(student_id)

        if todays is None:
            yesterdays = await self._activities.get(student_id, today - timedelta(days=1))
            return {
                'current_streak': 0,
                'longest_streak': longest,
                'days_until_streak_loss': 1,
                'streak_at_risk': bool(yesterdays and yesterdays.streak_day > 0),
                'milestone': None,
            }

        milestone = get_streak_milestone(todays.streak_day)
        return {
            'current_streak': todays.streak_day,
            'longest_streak': max(longest, todays.streak_day),
            'days_until_streak_loss': 0,
            'streak_at_risk': False,
            'milestone': milestone.to_dict() if milestone else None,
            'today_minutes': todays.minutes_learned,
        }

    async def get_weekly_engagement(self, student_id: str) -> Dict[str, Any]:
        today = self._today()
        # Weeks start on Sunday.
        week_start = today - timedelta(days=(today.weekday() + 1) % 7)
        activities = await self._activities.list_since(student_id, week_start)

        summary = {'week_start': week_start.isoformat()}
        summary.update(_engagement_totals(activities))
        summary['activities'] = [
            {
                'date': a.activity_date.isoformat(),
                'minutes': a.minutes_learned,
                'streak': a.streak_day,
            }
            for a in activities
        ]
        return summary

    async def get_monthly_engagement(self, student_id: str) -> Dict[str, Any]:
        month_start = self._today().replace(day=1)
        activities = await self._activities.list_since(student_id, month_start)

        summary = {'month_start': month_start.isoformat()}
        summary.update(_engagement_totals(activities))
        summary['current_streak'] = activities[-1].streak_day if activities else 0
        return summary

    async def get_streak_recovery(self, student_id: str) -> Dict[str, Any]:
        yesterdays = await self._activities.get(student_id, self._today() - timedelta(days=1))

        if yesterdays is not None and yesterdays.streak_day > 0:
            streak = yesterdays.streak_day
            logger.debug(f"Streak of {streak} days at risk for student {student_id}")
            return {
                'can_recover': True,
                'previous_streak': streak,
                'recovery_window': 1,
                'message': f"Your {streak}-day streak is at risk! Study today to keep it going!",
            }

        return {
            'can_recover': False,
            'message': "No active streak to recover.",
        }
