"""Placeholder documents served when DEV_MOCK_FALLBACK is on and the store is unreachable."""

from __future__ import annotations

from defence_coach.models import utcnow
from defence_coach.parsing import DEFAULT_QUESTIONS
from defence_coach.schemas import DEFENCE_CATEGORIES, CategoryScore, FeedbackView, ProjectDefenceSession


def mock_session(interview_id: str, user_id: str = "mock-user") -> ProjectDefenceSession:
    return ProjectDefenceSession(
        id=interview_id,
        user_id=user_id,
        status="finalized",
        finalized=True,
        questions=list(DEFAULT_QUESTIONS),
        question_count=len(DEFAULT_QUESTIONS),
        created_at=utcnow(),
        project_title="Sample Project",
        academic_level="undergraduate",
        technologies_used=["Python", "FastAPI"],
        focus_ratio="50/50",
    )


def mock_feedback(interview_id: str, user_id: str = "mock-user", feedback_id: str = "mock-feedback") -> FeedbackView:
    return FeedbackView(
        id=feedback_id,
        interview_id=interview_id,
        user_id=user_id,
        is_defence=True,
        total_score=70,
        category_scores=[
            CategoryScore(name=name, score=70, comment="Placeholder evaluation (development mode).")
            for name in DEFENCE_CATEGORIES
        ],
        strengths=["Clear project overview"],
        areas_for_improvement=["Explain testing strategy in more depth"],
        final_assessment="Development placeholder; the document store was unavailable.",
        documentation_insights="No documentation was analysed.",
        created_at=utcnow(),
    )
