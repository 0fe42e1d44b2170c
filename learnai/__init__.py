"""
LearnAI Progress Engine

Backend of the K-12 tutoring platform that turns finished learning sessions
into a per-student model of learning state.

The engine features:
1. Mastery tracking per topic with concept strengths and weaknesses
2. Daily activity, streaks and streak milestones
3. SM-2 spaced repetition scheduling of concept reviews
4. Topic recommendations from several independent strategies
5. Adaptive learning paths over the prerequisite graph
"""

__version__ = "0.1.0"
