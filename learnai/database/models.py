"""
Database models for the progress engine.

Curriculum tables (students, subjects, topics, concepts, learning
sessions) are read by the engine; progress, daily activity and concept
review tables are written by it.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)

from learnai.common.utils import utcnow
from learnai.database.base import ModelBase


class Student(ModelBase):
    __tablename__ = "students"

    id = Column(String(64), primary_key=True)
    first_name = Column(String(100), nullable=True)
    grade_level = Column(Integer, nullable=False, default=0)


class Subject(ModelBase):
    __tablename__ = "subjects"

    id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False)


class Topic(ModelBase):
    __tablename__ = "topics"

    id = Column(String(64), primary_key=True)
    subject_id = Column(String(64), ForeignKey("subjects.id"), nullable=False, index=True)
    parent_topic_id = Column(String(64), ForeignKey("topics.id"), nullable=True, index=True)
    name = Column(String(200), nullable=False)
    grade_level = Column(Integer, nullable=False, default=0)
    difficulty = Column(String(20), nullable=False, default="MEDIUM")
    prerequisites = Column(JSON, nullable=False, default=list)
    order_index = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)


class Concept(ModelBase):
    __tablename__ = "concepts"

    id = Column(String(64), primary_key=True)
    subject_id = Column(String(64), ForeignKey("subjects.id"), nullable=True)
    name = Column(String(200), nullable=False)


class LearningSession(ModelBase):
    __tablename__ = "learning_sessions"

    id = Column(String(64), primary_key=True)
    student_id = Column(String(64), ForeignKey("students.id"), nullable=False, index=True)
    subject_id = Column(String(64), ForeignKey("subjects.id"), nullable=False)
    topic_id = Column(String(64), ForeignKey("topics.id"), nullable=False)
    started_at = Column(DateTime, nullable=False, default=utcnow)
    ended_at = Column(DateTime, nullable=True)
    duration_minutes = Column(Integer, nullable=False, default=0)
    problems_attempted = Column(Integer, nullable=False, default=0)
    problems_correct = Column(Integer, nullable=False, default=0)


class StudentProgress(ModelBase):
    __tablename__ = "student_progress"
    __table_args__ = (
        UniqueConstraint("student_id", "topic_id"),
        Index("ix_student_progress_student_mastery", "student_id", "mastery_level"),
    )

    id = Column(String(64), primary_key=True)
    student_id = Column(String(64), ForeignKey("students.id"), nullable=False, index=True)
    subject_id = Column(String(64), ForeignKey("subjects.id"), nullable=False)
    topic_id = Column(String(64), ForeignKey("topics.id"), nullable=False)
    mastery_level = Column(Float, nullable=False, default=0.0)
    total_time_minutes = Column(Integer, nullable=False, default=0)
    sessions_count = Column(Integer, nullable=False, default=0)
    last_practiced_at = Column(DateTime, nullable=True)
    strengths = Column(JSON, nullable=False, default=list)
    weaknesses = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class DailyActivity(ModelBase):
    __tablename__ = "daily_activity"
    __table_args__ = (UniqueConstraint("student_id", "activity_date"),)

    id = Column(String(64), primary_key=True)
    student_id = Column(String(64), ForeignKey("students.id"), nullable=False, index=True)
    activity_date = Column(Date, nullable=False)
    minutes_learned = Column(Integer, nullable=False, default=0)
    sessions_count = Column(Integer, nullable=False, default=0)
    points_earned = Column(Integer, nullable=False, default=0)
    topics_studied = Column(JSON, nullable=False, default=list)
    streak_day = Column(Integer, nullable=False, default=1)


class ConceptReview(ModelBase):
    __tablename__ = "concept_reviews"
    __table_args__ = (
        UniqueConstraint("student_id", "concept_id"),
        Index("ix_concept_reviews_student_next_review", "student_id", "next_review_date"),
    )

    id = Column(String(64), primary_key=True)
    student_id = Column(String(64), ForeignKey("students.id"), nullable=False)
    concept_id = Column(String(64), ForeignKey("concepts.id"), nullable=False)
    subject_id = Column(String(64), ForeignKey("subjects.id"), nullable=True)
    ease_factor = Column(Float, nullable=False, default=2.5)
    interval = Column(Integer, nullable=False, default=1)
    repetitions = Column(Integer, nullable=False, default=0)
    next_review_date = Column(DateTime, nullable=False)
    last_reviewed_at = Column(DateTime, nullable=True)
    total_reviews = Column(Integer, nullable=False, default=0)
    average_quality = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class ReviewSession(ModelBase):
    __tablename__ = "review_sessions"

    id = Column(String(64), primary_key=True)
    review_id = Column(String(64), ForeignKey("concept_reviews.id"), nullable=False, index=True)
    session_id = Column(String(64), nullable=True)
    quality = Column(Float, nullable=False)
    reviewed_at = Column(DateTime, nullable=False, default=utcnow)
