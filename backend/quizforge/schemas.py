from __future__ import annotations

import re
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


_WS_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Case- and whitespace-insensitive comparison key."""
    return _WS_RE.sub(" ", str(text)).strip().lower()


def _clean_options(value: object) -> List[str]:
    if not isinstance(value, list):
        raise ValueError("options must be a list")
    options = [str(o).strip() for o in value]
    if len(options) != 4:
        raise ValueError(f"expected exactly 4 options, got {len(options)}")
    if any(not o for o in options):
        raise ValueError("options must not be empty")
    if len({normalize_text(o) for o in options}) != 4:
        raise ValueError("options must be distinct")
    return options


# ---------------------------------------------------------------------------
# Shapes the model is asked to return (validated, never trusted)
# ---------------------------------------------------------------------------


class OptionSet(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    question_number: Optional[int] = Field(default=None, alias="questionNumber")
    options: List[str]
    correct_answer_text: str = Field(alias="correctAnswerText")

    @field_validator("options", mode="before")
    @classmethod
    def _options(cls, v: object) -> List[str]:
        return _clean_options(v)

    @field_validator("correct_answer_text", mode="before")
    @classmethod
    def _answer(cls, v: object) -> str:
        text = str(v if v is not None else "").strip()
        if not text:
            raise ValueError("correctAnswerText is empty")
        return text


class FactCheckItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    question: str
    options: List[str]
    correct_answer_text: str = Field(alias="correctAnswerText")
    explanation: str = ""
    corrected: bool = False
    reason: str = ""

    @field_validator("question", "correct_answer_text", mode="before")
    @classmethod
    def _non_empty(cls, v: object) -> str:
        text = str(v if v is not None else "").strip()
        if not text:
            raise ValueError("must not be empty")
        return text

    @field_validator("options", mode="before")
    @classmethod
    def _options(cls, v: object) -> List[str]:
        return _clean_options(v)


# ---------------------------------------------------------------------------
# Pipeline records
# ---------------------------------------------------------------------------


class DraftQuestion(BaseModel):
    """A question with options and a candidate answer text, not yet reconciled."""

    text: str
    options: List[str]
    correct_answer_text: str
    explanation: str = ""


class QuestionRecord(BaseModel):
    """Server-held question including the answer key."""

    text: str
    options: List[str] = Field(min_length=4, max_length=4)
    correct_answer_index: int = Field(ge=0, le=3)
    explanation: str
    difficulty: Difficulty

    @classmethod
    def from_reconciled(cls, draft: DraftQuestion, index: int, difficulty: Difficulty) -> "QuestionRecord":
        if normalize_text(draft.options[index]) != normalize_text(draft.correct_answer_text):
            raise ValueError(
                f"option {index} ({draft.options[index]!r}) does not match answer {draft.correct_answer_text!r}"
            )
        return cls(
            text=draft.text,
            options=list(draft.options),
            correct_answer_index=index,
            explanation=draft.explanation,
            difficulty=difficulty,
        )


class SanitizedQuestion(BaseModel):
    text: str
    options: List[str]
    difficulty: Difficulty


class QuizSession(BaseModel):
    session_id: str
    session_hash: str
    questions: List[QuestionRecord]
    user_id: str
    start_time: int
    time_limit_seconds: int
    topic: str
    difficulty: Difficulty
    created_at: int
    expires_at: int


# ---------------------------------------------------------------------------
# Grading
# ---------------------------------------------------------------------------


class Mistake(BaseModel):
    question_index: int
    user_answer_index: Optional[int] = None
    correct_answer_index: int


class MistakeReview(BaseModel):
    question_index: int
    question: str
    user_answer: Optional[str] = None
    correct_answer: str
    explanation: str


class GradingResult(BaseModel):
    total_questions: int
    correct_count: int
    wrong_count: int
    score_percent: int
    mistakes: List[Mistake] = Field(default_factory=list)
    review: List[MistakeReview] = Field(default_factory=list)


class SubmissionValidation(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
    actual_elapsed_seconds: int


class GeneratedQuiz(BaseModel):
    session_id: str
    session_hash: str
    start_time: int
    time_limit_seconds: int
    topic: str
    difficulty: Difficulty
    questions: List[SanitizedQuestion]


class ActiveSession(BaseModel):
    """An unexpired quiz as listed back to its owner, without the answer key or binding."""

    session_id: str
    topic: str
    difficulty: Difficulty
    question_count: int
    start_time: int
    time_limit_seconds: int
    expires_at: int


# ---------------------------------------------------------------------------
# HTTP bodies
# ---------------------------------------------------------------------------


class GenerateQuizRequest(BaseModel):
    topic: str = Field(min_length=1, max_length=500)
    difficulty: Difficulty = Difficulty.INTERMEDIATE
    question_count: int = Field(default=5, ge=1, le=20)
    course_context: Optional[str] = Field(default=None, max_length=20000)
    time_limit_seconds: Optional[int] = Field(default=None, ge=30, le=7200)
    user_id: Optional[str] = Field(default=None, max_length=128)


class SubmitQuizRequest(BaseModel):
    session_id: str = Field(min_length=1, max_length=128)
    session_hash: str = Field(min_length=1, max_length=256)
    # shape is checked by validate_submission so every problem is reported together
    user_answers: Any
    start_time: Optional[int] = None
    time_limit_seconds: Optional[int] = None


class PracticeQuestionsRequest(BaseModel):
    topic: str = Field(min_length=1, max_length=500)
    context: Optional[str] = Field(default=None, max_length=20000)


class PracticeQuestionsResponse(BaseModel):
    questions: List[str]
