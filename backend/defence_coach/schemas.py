"""Request, view and rubric models.

Sessions and feedback are tagged by ``kind``; each variant carries its own
exhaustive field set so the job-interview and project-defence paths never
share a bag of optional properties.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, TypeAdapter, create_model, field_validator
from pydantic.alias_generators import to_camel

from defence_coach.models import FeedbackRecord, InterviewRecord

PROJECT_DEFENCE = "project-defence"
JOB_INTERVIEW = "job-interview"

RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

DEFAULT_QUESTION_COUNT = 5
MAX_QUESTION_COUNT = 20


def coerce_bounded_int(value: Any, min_value: int, max_value: int) -> Optional[int]:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return max(min_value, min(max_value, parsed))


def split_technologies(value: str) -> List[str]:
    return [tech.strip() for tech in value.split(",") if tech.strip()]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProjectFile(CamelModel):
    name: str
    type: str
    url: str
    path: Optional[str] = None


# --- generation requests -------------------------------------------------


class ProjectDefenceRequest(CamelModel):
    kind: Literal["project-defence"] = PROJECT_DEFENCE
    project_title: RequiredText
    technologies_used: RequiredText
    academic_level: str = "undergraduate"
    focus_ratio: str = "50/50"
    question_count: int = DEFAULT_QUESTION_COUNT
    user_id: Optional[str] = None
    project_file: Optional[ProjectFile] = None

    @field_validator("question_count", mode="before")
    @classmethod
    def _bound_count(cls, value: Any) -> int:
        return coerce_bounded_int(value, 1, MAX_QUESTION_COUNT) or DEFAULT_QUESTION_COUNT


class JobInterviewRequest(CamelModel):
    kind: Literal["job-interview"] = JOB_INTERVIEW
    role: RequiredText
    techstack: RequiredText
    level: str = "junior"
    interview_type: str = Field(default="mixed", alias="type")  # behavioral / technical balance
    amount: int = DEFAULT_QUESTION_COUNT
    user_id: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def _bound_amount(cls, value: Any) -> int:
        return coerce_bounded_int(value, 1, MAX_QUESTION_COUNT) or DEFAULT_QUESTION_COUNT


GenerationRequest = Annotated[Union[ProjectDefenceRequest, JobInterviewRequest], Field(discriminator="kind")]
generation_request_adapter: TypeAdapter = TypeAdapter(GenerationRequest)


def parse_generation_request(body: Dict[str, Any]) -> Union[ProjectDefenceRequest, JobInterviewRequest]:
    """Validate a raw request body; a body without ``kind`` is a project-defence request."""
    payload = dict(body)
    payload.setdefault("kind", PROJECT_DEFENCE)
    return generation_request_adapter.validate_python(payload)


# --- session views -------------------------------------------------------


class _SessionView(CamelModel):
    id: str
    user_id: Optional[str] = None
    status: str
    finalized: bool
    questions: List[str]
    question_count: int
    created_at: datetime


class ProjectDefenceSession(_SessionView):
    kind: Literal["project-defence"] = PROJECT_DEFENCE
    project_title: str
    academic_level: str
    technologies_used: List[str]
    focus_ratio: str
    project_file: Optional[ProjectFile] = None


class JobInterviewSession(_SessionView):
    kind: Literal["job-interview"] = JOB_INTERVIEW
    role: str
    level: str
    interview_type: str = Field(alias="type")
    techstack: List[str]


SessionView = Union[ProjectDefenceSession, JobInterviewSession]


def session_view(record: InterviewRecord) -> SessionView:
    common = dict(
        id=record.id,
        user_id=record.user_id,
        status=record.status,
        finalized=record.finalized,
        questions=list(record.questions or []),
        question_count=record.question_count,
        created_at=record.created_at,
    )
    if record.kind == JOB_INTERVIEW:
        return JobInterviewSession(
            role=record.role or "",
            level=record.level or "",
            interview_type=record.interview_type or "",
            techstack=list(record.technologies or []),
            **common,
        )
    return ProjectDefenceSession(
        project_title=record.project_title or "",
        academic_level=record.academic_level or "",
        technologies_used=list(record.technologies or []),
        focus_ratio=record.focus_ratio or "",
        project_file=ProjectFile(**record.project_file) if record.project_file else None,
        **common,
    )


# --- transcript & feedback parameters ------------------------------------


class TranscriptEntry(CamelModel):
    role: Literal["user", "system", "assistant"]
    content: str


class ProjectDetails(CamelModel):
    project_title: Optional[str] = None
    academic_level: Optional[str] = None
    technologies_used: Optional[str] = None
    project_file: Optional[ProjectFile] = None


class CreateFeedbackParams(CamelModel):
    interview_id: RequiredText
    user_id: RequiredText
    transcript: List[TranscriptEntry] = Field(default_factory=list)
    feedback_id: Optional[str] = None
    project_details: Optional[ProjectDetails] = None


# --- rubrics -------------------------------------------------------------

JOB_INTERVIEW_CATEGORIES: Tuple[str, ...] = (
    "Communication Skills",
    "Technical Knowledge",
    "Problem Solving",
    "Cultural Fit",
    "Confidence and Clarity",
)

DEFENCE_CATEGORIES: Tuple[str, ...] = (
    "Technical Depth",
    "Methodology Rigor",
    "Presentation Skills",
    "Critical Analysis",
    "Documentation Alignment",
)

Score = Annotated[float, Field(ge=0, le=100)]


class CategoryScore(CamelModel):
    name: str
    score: Score
    comment: str


def _category_model(name: str) -> Type[CategoryScore]:
    model_name = "".join(part.capitalize() for part in name.split()) + "Score"
    return create_model(model_name, __base__=CategoryScore, name=(Literal[name], ...))  # type: ignore[valid-type]


def _category_tuple(names: Tuple[str, ...]) -> Any:
    return Tuple[tuple(_category_model(name) for name in names)]  # type: ignore[misc]


JobInterviewCategories = _category_tuple(JOB_INTERVIEW_CATEGORIES)
DefenceCategories = _category_tuple(DEFENCE_CATEGORIES)


class _FeedbackBase(CamelModel):
    total_score: Score
    strengths: List[str]
    areas_for_improvement: List[str]
    final_assessment: str


class JobInterviewFeedback(_FeedbackBase):
    category_scores: JobInterviewCategories


class DefenceFeedback(_FeedbackBase):
    category_scores: DefenceCategories
    documentation_insights: str


Rubric = Union[JobInterviewFeedback, DefenceFeedback]


class FeedbackView(CamelModel):
    id: str
    interview_id: str
    user_id: Optional[str] = None
    is_defence: bool
    total_score: Optional[float] = None
    category_scores: List[CategoryScore]
    strengths: List[str]
    areas_for_improvement: List[str]
    final_assessment: Optional[str] = None
    documentation_insights: Optional[str] = None
    transcript: List[TranscriptEntry] = Field(default_factory=list)
    created_at: datetime


def feedback_view(record: FeedbackRecord) -> FeedbackView:
    return FeedbackView(
        id=record.id,
        interview_id=record.interview_id,
        user_id=record.user_id,
        is_defence=record.is_defence,
        total_score=record.total_score,
        category_scores=[CategoryScore(**item) for item in record.category_scores or []],
        strengths=list(record.strengths or []),
        areas_for_improvement=list(record.areas_for_improvement or []),
        final_assessment=record.final_assessment,
        documentation_insights=record.documentation_insights,
        transcript=[TranscriptEntry(**item) for item in record.transcript or []],
        created_at=record.created_at,
    )
