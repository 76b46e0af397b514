from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence, Union

import pytest

from defence_coach.db import Database
from defence_coach.llm import LLMError
from defence_coach.schemas import DEFENCE_CATEGORIES, JOB_INTERVIEW_CATEGORIES
from defence_coach.store import SessionStore


class FakeLLM:
    """Replays canned replies; an exception instance in the list is raised instead."""

    def __init__(self, replies: Optional[Sequence[Union[str, Exception]]] = None) -> None:
        self.replies: List[Union[str, Exception]] = list(replies or [])
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, system_prompt: str, user_prompt: str, *, purpose: str, **kwargs: Any) -> str:
        self.calls.append({"system": system_prompt, "user": user_prompt, "purpose": purpose})
        if not self.replies:
            raise LLMError("no reply queued")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def rubric_payload(defence: bool = False, score: float = 72) -> Dict[str, Any]:
    names = DEFENCE_CATEGORIES if defence else JOB_INTERVIEW_CATEGORIES
    payload: Dict[str, Any] = {
        "totalScore": score,
        "categoryScores": [{"name": name, "score": score, "comment": f"{name} was fine."} for name in names],
        "strengths": ["Clear explanations"],
        "areasForImprovement": ["Quantify results"],
        "finalAssessment": "Solid attempt.",
    }
    if defence:
        payload["documentationInsights"] = "Report matches the answers."
    return payload


def rubric_reply(defence: bool = False) -> str:
    return json.dumps(rubric_payload(defence))


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
async def database(db_url):
    db = Database(db_url)
    await db.init()
    yield db
    await db.dispose()


@pytest.fixture
def store(database) -> SessionStore:
    return SessionStore(database)
