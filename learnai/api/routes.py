"""
API Routes Module

HTTP endpoints of the progress engine:
- Session progress tracking and progress summaries
- Streaks and engagement
- Topic recommendations and adaptive learning paths
- Spaced repetition reviews

Domain errors propagate to the exception handlers registered in
``learnai.main``.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from learnai.common.error_handling import NotFoundError, ValidationError
from learnai.common.logger import app_logger
from learnai.progress.review_service import DEFAULT_INITIAL_QUALITY, SpacedRepetitionService
from learnai.progress.streak_service import StreakService
from learnai.progress.tracker import ProgressTracker
from learnai.recommendations.adaptive_path import AdaptiveLearningPathService
from learnai.recommendations.engine import RecommendationEngine

from .dependencies import (
    get_learning_path_service,
    get_recommendation_engine,
    get_review_service,
    get_streak_service,
    get_tracker,
)
from .schemas import (
    AdjustPathRequest,
    PathAction,
    ProgressResponse,
    RecommendationSetResponse,
    ReviewAction,
    ReviewQueryAction,
    ReviewRequest,
    SessionProgressRequest,
)

logger = app_logger.getChild("api.routes")

progress_router = APIRouter(tags=["Progress"])
recommendations_router = APIRouter(prefix="/recommendations", tags=["Recommendations"])
learning_router = APIRouter(prefix="/learning", tags=["Learning"])


@progress_router.post("/sessions/{session_id}/progress", response_model=ProgressResponse)
async def track_session_progress(
    session_id: str,
    body: SessionProgressRequest,
    tracker: ProgressTracker = Depends(get_tracker)
) -> Dict[str, Any]:
    """
    Record the results of a finished learning session.

    Returns:
        The student's updated progress on the session's topic
    """
    progress = await tracker.track_session_progress(session_id, body.to_session_data())
    return progress.to_dict()


@progress_router.get("/students/{student_id}/progress")
async def get_progress_summary(
    student_id: str,
    subject_id: Optional[str] = Query(None, description="Restrict to one subject"),
    tracker: ProgressTracker = Depends(get_tracker)
) -> Dict[str, Any]:
    summary = await tracker.get_progress_summary(student_id, subject_id)
    return {"success": True, **summary}


@progress_router.get("/students/{student_id}/progress/{topic_id}", response_model=ProgressResponse)
async def get_topic_progress(
    student_id: str,
    topic_id: str,
    tracker: ProgressTracker = Depends(get_tracker)
) -> Dict[str, Any]:
    progress = await tracker.get_topic_progress(student_id, topic_id)
    if progress is None:
        raise NotFoundError("progress", f"{student_id}/{topic_id}")
    return progress.to_dict()


@progress_router.get("/students/{student_id}/streak")
async def get_streak(
    student_id: str,
    streaks: StreakService = Depends(get_streak_service)
) -> Dict[str, Any]:
    """Current streak, milestone and recovery information."""
    info = await streaks.get_streak_info(student_id)
    info["recovery"] = await streaks.get_streak_recovery(student_id)
    return {"success": True, **info}


@progress_router.get("/students/{student_id}/engagement")
async def get_engagement(
    student_id: str,
    period: str = Query("week", pattern="^(week|month)$", description="Summary period"),
    streaks: StreakService = Depends(get_streak_service)
) -> Dict[str, Any]:
    if period == "month":
        summary = await streaks.get_monthly_engagement(student_id)
    else:
        summary = await streaks.get_weekly_engagement(student_id)
    return {"success": True, **summary}


@recommendations_router.get("", response_model=RecommendationSetResponse)
async def get_recommendations(
    student_id: str = Query(..., description="Student to recommend topics for"),
    subject_id: Optional[str] = Query(None, description="Restrict to one subject"),
    limit: Optional[int] = Query(None, ge=1, le=50, description="Maximum recommendations"),
    include_prerequisites: bool = Query(True, description="Whether to surface missing prerequisites"),
    engine: RecommendationEngine = Depends(get_recommendation_engine)
) -> Dict[str, Any]:
    result = await engine.get_recommendations(student_id, subject_id, limit, include_prerequisites)
    return {"success": True, **result.to_dict()}


@recommendations_router.get("/path")
async def get_personalized_path(
    student_id: str = Query(..., description="Student to build the path for"),
    subject_id: Optional[str] = Query(None, description="Restrict to one subject"),
    engine: RecommendationEngine = Depends(get_recommendation_engine)
) -> Dict[str, Any]:
    path = await engine.get_personalized_path(student_id, subject_id)
    return {"success": True, **path.to_dict()}


@learning_router.get("/adaptive-path")
async def get_adaptive_path(
    student_id: str = Query(...),
    subject_id: str = Query(...),
    action: PathAction = Query(PathAction.PATH),
    current_topic_id: Optional[str] = Query(None),
    include_prerequisites: bool = Query(True),
    include_enrichment: bool = Query(True),
    max_depth: Optional[int] = Query(None, ge=1, le=100),
    paths: AdaptiveLearningPathService = Depends(get_learning_path_service)
) -> Dict[str, Any]:
    if action is PathAction.VISUALIZATION:
        data = await paths.get_path_visualization(student_id, subject_id)
    else:
        path = await paths.get_learning_path(
            student_id,
            subject_id,
            current_topic_id=current_topic_id,
            include_prerequisites=include_prerequisites,
            include_enrichment=include_enrichment,
            max_depth=max_depth,
        )
        data = path.to_dict()
    return {"success": True, **data}


@learning_router.post("/adaptive-path")
async def adjust_adaptive_path(
    body: AdjustPathRequest,
    paths: AdaptiveLearningPathService = Depends(get_learning_path_service)
) -> Dict[str, Any]:
    """Adjust a student's path from the performance of the running session."""
    path = await paths.adjust_path(
        body.student_id,
        body.topic_id,
        accuracy=body.accuracy,
        time_spent=body.time_spent,
        attempts=body.attempts,
    )
    return {"success": True, **path.to_dict()}


@learning_router.get("/spaced-repetition")
async def get_spaced_repetition(
    student_id: str = Query(...),
    action: ReviewQueryAction = Query(ReviewQueryAction.DUE),
    subject_id: Optional[str] = Query(None),
    concept_id: Optional[str] = Query(None),
    reviews: SpacedRepetitionService = Depends(get_review_service)
) -> Dict[str, Any]:
    if action is ReviewQueryAction.STATISTICS:
        data = await reviews.get_review_statistics(student_id)
    elif action is ReviewQueryAction.SCHEDULE:
        if not concept_id:
            raise ValidationError("concept_id is required for the schedule action")
        data = (await reviews.get_review_schedule(student_id, concept_id)).to_dict()
    else:
        due = await reviews.get_concepts_due_for_review(student_id, subject_id)
        data = {"concepts": [d.to_dict() for d in due]}
    return {"success": True, **data}


@learning_router.post("/spaced-repetition")
async def post_spaced_repetition(
    body: ReviewRequest,
    reviews: SpacedRepetitionService = Depends(get_review_service)
) -> Dict[str, Any]:
    """Record a review, or schedule the first review of a newly learned concept."""
    if body.action is ReviewAction.SCHEDULE:
        review = await reviews.schedule_initial_review(
            body.student_id,
            body.concept_id,
            body.subject_id,
            body.quality if body.quality is not None else DEFAULT_INITIAL_QUALITY,
        )
        return {"success": True, "review": review.to_dict()}

    if body.quality is None:
        raise ValidationError("quality (0-5) is required to record a review")

    outcome = await reviews.record_review(
        body.student_id,
        body.concept_id,
        body.quality,
        subject_id=body.subject_id,
        session_id=body.session_id,
    )
    return outcome.to_dict()
