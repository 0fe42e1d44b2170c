"""
Progress tracking: mastery, streaks, spaced repetition and their storage.
"""

from learnai.progress.mastery import (
    ConceptClassification,
    calculate_mastery_level,
    mastery_fraction,
    update_strengths_weaknesses,
)
from learnai.progress.models import (
    Concept,
    ConceptReview,
    DailyActivity,
    Difficulty,
    LearningSession,
    ReviewLog,
    SessionData,
    Student,
    StudentProgress,
    Subject,
    Topic,
)
from learnai.progress.review_service import SpacedRepetitionService
from learnai.progress.spaced_repetition import SpacedRepetitionScheduler
from learnai.progress.streak_service import StreakService
from learnai.progress.streaks import calculate_streak, get_streak_milestone
from learnai.progress.tracker import ProgressTracker

__all__ = [
    'ConceptClassification',
    'calculate_mastery_level',
    'mastery_fraction',
    'update_strengths_weaknesses',
    'Concept',
    'ConceptReview',
    'DailyActivity',
    'Difficulty',
    'LearningSession',
    'ReviewLog',
    'SessionData',
    'Student',
    'StudentProgress',
    'Subject',
    'Topic',
    'SpacedRepetitionService',
    'SpacedRepetitionScheduler',
    'StreakService',
    'calculate_streak',
    'get_streak_milestone',
    'ProgressTracker',
]
