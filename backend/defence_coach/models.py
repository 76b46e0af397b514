from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InterviewRecord(SQLModel, table=True):
    __tablename__ = "interviews"

    id: str = Field(default_factory=new_id, primary_key=True)
    kind: str  # "project-defence" | "job-interview"
    user_id: Optional[str] = Field(default=None, index=True)
    status: str = Field(default="pending")
    finalized: bool = Field(default=False)
    # project-defence
    project_title: Optional[str] = Field(default=None)
    academic_level: Optional[str] = Field(default=None)
    focus_ratio: Optional[str] = Field(default=None)
    project_file: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    # job-interview
    role: Optional[str] = Field(default=None)
    level: Optional[str] = Field(default=None)
    interview_type: Optional[str] = Field(default=None)
    technologies: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    questions: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    question_count: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow, index=True)


class FeedbackRecord(SQLModel, table=True):
    __tablename__ = "feedback"

    id: str = Field(default_factory=new_id, primary_key=True)
    interview_id: str = Field(index=True)  # denormalized, no FK constraint
    user_id: Optional[str] = Field(default=None, index=True)
    is_defence: bool = Field(default=False)
    total_score: Optional[float] = Field(default=None)
    category_scores: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    strengths: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    areas_for_improvement: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    final_assessment: Optional[str] = Field(default=None)
    documentation_insights: Optional[str] = Field(default=None)
    transcript: List[Dict[str, str]] = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)
