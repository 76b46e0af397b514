"""Tolerant JSON extraction so we survive code fences or preambles in model output."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

LOG = logging.getLogger("defence_coach.parsing")

DEFAULT_QUESTIONS: Tuple[str, ...] = (
    "What was the main objective of your project?",
    "What technologies did you use and why?",
    "What were the biggest challenges you faced?",
    "How did you test your implementation?",
    "What would you do differently next time?",
)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")

Strategy = Callable[[str], Optional[Any]]


def _loads(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None


def strict_json(text: str) -> Optional[Any]:
    return _loads(text.strip())


def fenced_block(text: str) -> Optional[Any]:
    match = _FENCE_RE.search(text)
    if not match:
        return None
    return _loads(match.group(1).strip())


def _between(text: str, opening: str, closing: str) -> Optional[Any]:
    start = text.find(opening)
    end = text.rfind(closing)
    if start == -1 or end <= start:
        return None
    return _loads(text[start : end + 1])


def bracketed_array(text: str) -> Optional[Any]:
    return _between(text, "[", "]")


def braced_object(text: str) -> Optional[Any]:
    return _between(text, "{", "}")


QUESTION_STRATEGIES: Sequence[Tuple[str, Strategy]] = (
    ("strict", strict_json),
    ("fenced", fenced_block),
    ("brackets", bracketed_array),
)

OBJECT_STRATEGIES: Sequence[Tuple[str, Strategy]] = (
    ("strict", strict_json),
    ("fenced", fenced_block),
    ("braces", braced_object),
)


def _as_questions(value: Any) -> Optional[List[str]]:
    if not isinstance(value, list):
        return None
    questions = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return questions or None


def parse_question_list(text: Optional[str]) -> List[str]:
    """Return the questions found in ``text``, or the built-in defaults.

    Strategies run in order and each one is total; the first that yields a
    non-empty list of strings wins. Never raises.
    """
    raw = text or ""
    for name, strategy in QUESTION_STRATEGIES:
        questions = _as_questions(strategy(raw))
        if questions:
            if name != "strict":
                LOG.info("Question list recovered via %s extraction", name)
            return questions
    LOG.warning("All question parsing strategies failed; using defaults. raw=%s", raw[:200])
    return list(DEFAULT_QUESTIONS)


def extract_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    raw = text or ""
    for _, strategy in OBJECT_STRATEGIES:
        data = strategy(raw)
        if isinstance(data, dict):
            return data
    return None
