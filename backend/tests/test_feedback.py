import json

import pytest
from conftest import FakeLLM, rubric_payload, rubric_reply
from pydantic import ValidationError

from defence_coach.feedback import FeedbackGenerationError, FeedbackGenerator, format_transcript
from defence_coach.llm import LLMError
from defence_coach.models import FeedbackRecord
from defence_coach.schemas import (
    CreateFeedbackParams,
    DefenceFeedback,
    JobInterviewFeedback,
    ProjectDetails,
    TranscriptEntry,
)
from defence_coach.store import UnauthorizedError

TRANSCRIPT = [
    {"role": "assistant", "content": "Introduce your project."},
    {"role": "user", "content": "It waters plants automatically."},
]


def params(**overrides):
    data = {"interviewId": "int-1", "userId": "u1", "transcript": TRANSCRIPT}
    data.update(overrides)
    return CreateFeedbackParams.model_validate(data)


def test_format_transcript():
    entries = [TranscriptEntry(**item) for item in TRANSCRIPT]
    assert format_transcript(entries) == (
        "- assistant: Introduce your project.\n- user: It waters plants automatically.\n"
    )


def test_schema_accepts_complete_rubrics():
    assert JobInterviewFeedback.model_validate(rubric_payload()).total_score == 72
    defence = DefenceFeedback.model_validate(rubric_payload(defence=True))
    assert [c.name for c in defence.category_scores][0] == "Technical Depth"


def test_schema_rejects_missing_category():
    payload = rubric_payload()
    payload["categoryScores"] = payload["categoryScores"][:4]
    with pytest.raises(ValidationError):
        JobInterviewFeedback.model_validate(payload)


def test_schema_rejects_wrong_category_name():
    payload = rubric_payload(defence=True)
    payload["categoryScores"][4]["name"] = "Cultural Fit"
    with pytest.raises(ValidationError):
        DefenceFeedback.model_validate(payload)


def test_schema_rejects_out_of_range_score():
    payload = rubric_payload()
    payload["totalScore"] = 140
    with pytest.raises(ValidationError):
        JobInterviewFeedback.model_validate(payload)


def test_defence_schema_requires_documentation_insights():
    payload = rubric_payload(defence=True)
    del payload["documentationInsights"]
    with pytest.raises(ValidationError):
        DefenceFeedback.model_validate(payload)


async def test_job_interview_feedback_is_persisted(store):
    llm = FakeLLM([rubric_reply()])
    record = await FeedbackGenerator(llm, store).create(params())

    stored = await store.get_feedback(record.id)
    assert stored.interview_id == "int-1"
    assert stored.is_defence is False
    assert stored.documentation_insights is None
    assert [c["name"] for c in stored.category_scores][1] == "Technical Knowledge"
    assert len(stored.transcript) == 2
    assert "Communication Skills" in llm.calls[0]["user"]
    assert "- user: It waters plants automatically." in llm.calls[0]["user"]


async def test_project_details_select_defence_rubric(store):
    llm = FakeLLM(["```json\n" + rubric_reply(defence=True) + "\n```"])
    details = {"projectTitle": "Smart Irrigation", "academicLevel": "masters", "technologiesUsed": "Python"}
    record = await FeedbackGenerator(llm, store).create(params(projectDetails=details))

    assert record.is_defence is True
    assert record.documentation_insights == "Report matches the answers."
    prompt = llm.calls[0]["user"]
    assert "Documentation Alignment" in prompt
    assert "Smart Irrigation" in prompt
    assert "masters" in llm.calls[0]["system"]


async def test_invalid_model_output_raises_without_retry(store):
    llm = FakeLLM(["I refuse to grade this.", rubric_reply()])
    with pytest.raises(FeedbackGenerationError):
        await FeedbackGenerator(llm, store).create(params())
    assert len(llm.calls) == 1


async def test_schema_mismatch_raises(store):
    payload = rubric_payload(defence=True)  # defence categories for a job interview
    llm = FakeLLM([json.dumps(payload)])
    with pytest.raises(FeedbackGenerationError):
        await FeedbackGenerator(llm, store).create(params())


async def test_model_error_raises(store):
    llm = FakeLLM([LLMError("timeout")])
    with pytest.raises(FeedbackGenerationError):
        await FeedbackGenerator(llm, store).evaluate([], ProjectDetails())


async def test_existing_feedback_id_merges_without_model_call(store):
    existing = await store.save_feedback(
        FeedbackRecord(interview_id="int-1", user_id="u1", transcript=[{"role": "user", "content": "earlier"}])
    )
    llm = FakeLLM([rubric_reply()])
    record = await FeedbackGenerator(llm, store).create(params(feedbackId=existing.id))

    assert record.id == existing.id
    assert llm.calls == []
    stored = await store.get_feedback(existing.id)
    assert [entry["content"] for entry in stored.transcript] == [
        "earlier",
        "Introduce your project.",
        "It waters plants automatically.",
    ]


async def test_merge_rejects_feedback_of_another_interview(store):
    existing = await store.save_feedback(
        FeedbackRecord(interview_id="other-int", user_id="u1", transcript=[{"role": "user", "content": "earlier"}])
    )
    llm = FakeLLM([rubric_reply()])
    with pytest.raises(UnauthorizedError):
        await FeedbackGenerator(llm, store).create(params(feedbackId=existing.id))

    assert llm.calls == []
    stored = await store.get_feedback(existing.id)
    assert [entry["content"] for entry in stored.transcript] == ["earlier"]


async def test_unknown_feedback_id_is_reused_for_new_document(store):
    llm = FakeLLM([rubric_reply()])
    record = await FeedbackGenerator(llm, store).create(params(feedbackId="chosen-id"))
    assert record.id == "chosen-id"
    assert (await store.get_feedback("chosen-id")).total_score == 72
