from __future__ import annotations

import logging
from typing import List, Union

from defence_coach.llm import LLMClient, LLMError
from defence_coach.models import InterviewRecord
from defence_coach.parsing import DEFAULT_QUESTIONS, parse_question_list
from defence_coach.schemas import (
    JOB_INTERVIEW,
    PROJECT_DEFENCE,
    JobInterviewRequest,
    ProjectDefenceRequest,
    split_technologies,
)
from defence_coach.store import SessionStore

LOG = logging.getLogger("defence_coach.questions")

QuestionRequest = Union[ProjectDefenceRequest, JobInterviewRequest]

SYSTEM_PROMPT = (
    "You prepare questions for a spoken mock examination that a voice assistant will read aloud. "
    "Respond with a JSON array of strings only, e.g. [\"Question 1\", \"Question 2\"]. "
    "Do not number the questions and avoid markdown, code fences and special characters like / or * "
    "that would break a text-to-speech voice."
)


def build_defence_prompt(request: ProjectDefenceRequest) -> str:
    lines = [
        f"Generate {request.question_count} project defence questions.",
        f"Project title: {request.project_title}",
        f"Academic level: {request.academic_level}",
        f"Technologies used: {request.technologies_used}",
        f"Focus ratio (theory/practice): {request.focus_ratio}",
    ]
    if request.project_file:
        lines.append(f"Supporting documentation: {request.project_file.name} ({request.project_file.type})")
    lines.append(f"Return only a JSON array of exactly {request.question_count} questions.")
    return "\n".join(lines)


def build_interview_prompt(request: JobInterviewRequest) -> str:
    return "\n".join(
        [
            f"Generate {request.amount} job interview questions.",
            f"Role: {request.role}",
            f"Experience level: {request.level}",
            f"Tech stack: {request.techstack}",
            f"Behavioural/technical balance: {request.interview_type}",
            f"Return only a JSON array of exactly {request.amount} questions.",
        ]
    )


class QuestionGenerator:
    def __init__(self, llm: LLMClient, store: SessionStore) -> None:
        self.llm = llm
        self.store = store

    async def generate(self, request: QuestionRequest) -> List[str]:
        """Always returns a non-empty question list; model and parse failures degrade to defaults."""
        if isinstance(request, ProjectDefenceRequest):
            prompt = build_defence_prompt(request)
        else:
            prompt = build_interview_prompt(request)
        try:
            content = await self.llm.complete(SYSTEM_PROMPT, prompt, purpose="questions", max_tokens=800)
        except LLMError as exc:
            LOG.warning("Question generation failed, using defaults: %s", exc)
            return list(DEFAULT_QUESTIONS)
        return parse_question_list(content)

    async def create_session(self, request: QuestionRequest) -> InterviewRecord:
        questions = await self.generate(request)
        if isinstance(request, ProjectDefenceRequest):
            record = InterviewRecord(
                kind=PROJECT_DEFENCE,
                user_id=request.user_id,
                project_title=request.project_title,
                academic_level=request.academic_level,
                focus_ratio=request.focus_ratio,
                technologies=split_technologies(request.technologies_used),
                project_file=request.project_file.model_dump() if request.project_file else None,
                question_count=request.question_count,
            )
        else:
            record = InterviewRecord(
                kind=JOB_INTERVIEW,
                user_id=request.user_id,
                role=request.role,
                level=request.level,
                interview_type=request.interview_type,
                technologies=split_technologies(request.techstack),
                question_count=request.amount,
            )
        record.questions = questions
        # Questions are fixed at creation, so the session is finalized straight away.
        record.status = "finalized"
        record.finalized = True
        return await self.store.create_interview(record)
