# =============================================================================
# CONFTEST - Shared fixtures
# =============================================================================
# Environment, a scripted completion gateway, a fake clock and sample quizzes
# =============================================================================

import json
import os
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, patch

import pytest


# =============================================================================
# ENVIRONMENT
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Settings are read at import time, so the environment is fixed for the whole run."""
    env_vars = {
        "GEMINI_API_KEY": "test-gemini-key",
        "LOCAL_FALLBACK_ENABLED": "false",
        "QUIZ_SECRET_KEY": "test-secret",
        "DATABASE_URL": "sqlite://",
        "SESSION_BACKEND": "memory",
        "RETRY_BASE_DELAY_SECONDS": "0",
        "STAGE_RETRY_DELAY_SECONDS": "0",
        "LOG_LEVEL": "ERROR",
    }
    with patch.dict(os.environ, env_vars):
        yield


# =============================================================================
# CLOCK / SLEEP
# =============================================================================


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def no_sleep():
    """Stand-in for asyncio.sleep that records requested delays."""
    return AsyncMock(return_value=None)


# =============================================================================
# COMPLETION GATEWAY
# =============================================================================


class ScriptedGateway:
    """Completion gateway fake.

    Responses are queued per stage (the label up to any ``[``). A queued
    exception is raised instead of returned.
    """

    def __init__(self, script: Optional[Dict[str, List[Any]]] = None):
        self.script: Dict[str, List[Any]] = {k: list(v) for k, v in (script or {}).items()}
        self.calls: List[Dict[str, Any]] = []

    def queue(self, stage: str, *responses: Any) -> None:
        self.script.setdefault(stage, []).extend(responses)

    def calls_for(self, stage: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["label"].split("[")[0] == stage]

    async def generate(self, model, prompt, *, temperature=None, max_tokens=None, label="completion"):
        self.calls.append(
            {"model": model, "prompt": prompt, "temperature": temperature, "max_tokens": max_tokens, "label": label}
        )
        stage = label.split("[")[0]
        queue = self.script.get(stage)
        if not queue:
            raise AssertionError(f"no scripted response left for {label}")
        response = queue.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


@pytest.fixture
def scripted_gateway():
    return ScriptedGateway()


# =============================================================================
# SAMPLE QUIZ DATA
# =============================================================================

QUESTIONS = [
    "What is 2 + 2?",
    "What is the capital of France?",
    "Which planet is known as the Red Planet?",
]

OPTION_SETS = [
    {"questionNumber": 1, "options": ["4", "3", "5", "6"], "correctAnswerText": "4"},
    {"questionNumber": 2, "options": ["Paris", "London", "Rome", "Berlin"], "correctAnswerText": "Paris"},
    {"questionNumber": 3, "options": ["Venus", "Jupiter", "Mars", "Saturn"], "correctAnswerText": "Mars"},
]

EXPLANATIONS = [
    "Adding two and two gives four.",
    "Paris has been the capital of France for centuries.",
    "Iron oxide on its surface makes Mars look red.",
]


def fact_check_echo(corrected: bool = False) -> List[Dict[str, Any]]:
    return [
        {
            "question": q,
            "options": o["options"],
            "correctAnswerText": o["correctAnswerText"],
            "explanation": e,
            "corrected": corrected,
            "reason": "",
        }
        for q, o, e in zip(QUESTIONS, OPTION_SETS, EXPLANATIONS)
    ]


@pytest.fixture
def happy_script() -> Dict[str, List[Any]]:
    """One successful response per stage for the three-question quiz."""
    return {
        "draft_questions": [json.dumps(QUESTIONS)],
        "generate_options": ["```json\n" + json.dumps(OPTION_SETS) + "\n```"],
        "generate_explanations": [json.dumps(EXPLANATIONS)],
        "fact_check": [json.dumps(fact_check_echo())],
    }


@pytest.fixture
def sample_records():
    from quizforge.schemas import Difficulty, QuestionRecord

    return [
        QuestionRecord(
            text=q,
            options=o["options"],
            correct_answer_index=o["options"].index(o["correctAnswerText"]),
            explanation=e,
            difficulty=Difficulty.BEGINNER,
        )
        for q, o, e in zip(QUESTIONS, OPTION_SETS, EXPLANATIONS)
    ]


@pytest.fixture
def memory_store(fake_clock):
    from quizforge.session_store import InMemorySessionStore

    return InMemorySessionStore(clock=fake_clock)


@pytest.fixture
def quiz_data() -> Dict[str, Any]:
    """Fresh copies of the sample quiz pieces, safe to mutate."""
    return json.loads(
        json.dumps(
            {
                "questions": QUESTIONS,
                "option_sets": OPTION_SETS,
                "explanations": EXPLANATIONS,
                "fact_check": fact_check_echo(),
            }
        )
    )
