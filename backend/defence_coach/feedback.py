from __future__ import annotations

import json
import logging
from typing import Iterable, Optional, Type

from pydantic import ValidationError

from defence_coach.llm import LLMClient, LLMError
from defence_coach.models import FeedbackRecord
from defence_coach.parsing import extract_json_object
from defence_coach.schemas import (
    DEFENCE_CATEGORIES,
    JOB_INTERVIEW_CATEGORIES,
    CreateFeedbackParams,
    DefenceFeedback,
    JobInterviewFeedback,
    ProjectDetails,
    Rubric,
    TranscriptEntry,
)
from defence_coach.store import NotFoundError, SessionStore, UnauthorizedError

LOG = logging.getLogger("defence_coach.feedback")


class FeedbackGenerationError(RuntimeError):
    """The model could not produce a rubric-conforming evaluation."""


def format_transcript(transcript: Iterable[TranscriptEntry]) -> str:
    return "".join(f"- {entry.role}: {entry.content}\n" for entry in transcript)


INTERVIEW_SYSTEM_PROMPT = (
    "You are a professional interviewer analyzing a mock interview. "
    "Evaluate the candidate strictly on the structured categories provided. "
    "Respond with a single JSON object only, no markdown or commentary."
)

DEFENCE_SYSTEM_PROMPT = (
    "ROLE: Senior academic examiner. Apply {level} grading standards strictly, never assume unstated "
    "knowledge and treat undocumented claims as weaknesses. "
    "Respond with a single JSON object only, no markdown or commentary."
)


def build_interview_prompt(transcript_block: str) -> str:
    categories = "\n".join(f"- {name}" for name in JOB_INTERVIEW_CATEGORIES)
    return (
        "You are analyzing a mock interview. Be thorough and do not be lenient; point out mistakes and "
        "areas for improvement.\n"
        f"Transcript:\n{transcript_block}\n"
        "Score the candidate from 0 to 100 in exactly these categories, in this order, and add no others:\n"
        f"{categories}\n"
    )


def build_defence_prompt(transcript_block: str, details: ProjectDetails) -> str:
    technologies = details.technologies_used or "the technologies used"
    title = details.project_title or "the project"
    level = details.academic_level or "undergraduate"
    lines = ["Analyze this project defence performance."]
    if details.project_file:
        lines.append(f"Project documentation: {details.project_file.name} ({details.project_file.type})")
    lines.append(f"Defence transcript:\n{transcript_block}")
    descriptions = (
        f"understanding of {technologies} and implementation challenges",
        f"validity of the research approach behind {title}",
        "clarity when explaining complex concepts",
        "quality of responses to examiner challenges",
        "consistency between answers and the project documentation",
    )
    lines.append("Score from 0 to 100 in exactly these categories, in this order:")
    lines.extend(f"- {name}: {text}" for name, text in zip(DEFENCE_CATEGORIES, descriptions))
    if details.project_file:
        lines.append(f"Cross-reference answers with the content of {details.project_file.name}.")
    else:
        lines.append("Analyze the depth of the technical explanations.")
    lines.append(f"Identify three key areas for improvement against {level} standards.")
    lines.append("Summarise documentation observations in documentationInsights.")
    return "\n".join(lines)


class FeedbackGenerator:
    def __init__(self, llm: LLMClient, store: SessionStore) -> None:
        self.llm = llm
        self.store = store

    async def create(self, params: CreateFeedbackParams) -> FeedbackRecord:
        """Evaluate a transcript and persist the result.

        When ``params.feedback_id`` names an existing document the transcript is
        merged into it instead and the model is not called. Uniqueness per
        (interview, user) is the caller's responsibility.
        """
        if params.feedback_id:
            existing = await self._existing(params.feedback_id)
            if existing is not None:
                if existing.interview_id != params.interview_id:
                    LOG.warning(
                        "Feedback %s belongs to interview %s, not %s",
                        existing.id,
                        existing.interview_id,
                        params.interview_id,
                    )
                    raise UnauthorizedError("feedback belongs to a different interview")
                entries = [entry.model_dump() for entry in params.transcript]
                return await self.store.merge_transcript(params.feedback_id, params.user_id, entries)

        is_defence = params.project_details is not None
        rubric = await self.evaluate(params.transcript, params.project_details)
        record = FeedbackRecord(
            interview_id=params.interview_id,
            user_id=params.user_id,
            is_defence=is_defence,
            total_score=rubric.total_score,
            category_scores=[category.model_dump() for category in rubric.category_scores],
            strengths=list(rubric.strengths),
            areas_for_improvement=list(rubric.areas_for_improvement),
            final_assessment=rubric.final_assessment,
            documentation_insights=rubric.documentation_insights if isinstance(rubric, DefenceFeedback) else None,
            transcript=[entry.model_dump() for entry in params.transcript],
        )
        if params.feedback_id:
            record.id = params.feedback_id
        return await self.store.save_feedback(record)

    async def evaluate(
        self, transcript: Iterable[TranscriptEntry], details: Optional[ProjectDetails] = None
    ) -> Rubric:
        transcript_block = format_transcript(transcript)
        schema: Type[Rubric]
        if details is not None:
            schema = DefenceFeedback
            system_prompt = DEFENCE_SYSTEM_PROMPT.format(level=details.academic_level or "undergraduate")
            prompt = build_defence_prompt(transcript_block, details)
        else:
            schema = JobInterviewFeedback
            system_prompt = INTERVIEW_SYSTEM_PROMPT
            prompt = build_interview_prompt(transcript_block)
        prompt += "\nReturn JSON matching this schema:\n" + json.dumps(schema.model_json_schema(by_alias=True))

        try:
            content = await self.llm.complete(
                system_prompt, prompt, purpose="feedback", max_tokens=1500, temperature=0.3
            )
        except LLMError as exc:
            raise FeedbackGenerationError(str(exc)) from exc

        data = extract_json_object(content)
        if data is None:
            LOG.warning("Feedback reply was not JSON; raw content: %s", content[:200])
            raise FeedbackGenerationError("model reply was not a JSON object")
        try:
            return schema.model_validate(data)
        except ValidationError as exc:
            LOG.warning("Feedback reply failed %s validation: %s", schema.__name__, exc.error_count())
            raise FeedbackGenerationError(f"model reply failed schema validation: {exc}") from exc

    async def _existing(self, feedback_id: str) -> Optional[FeedbackRecord]:
        try:
            return await self.store.get_feedback(feedback_id)
        except NotFoundError:
            return None
