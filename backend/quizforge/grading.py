from __future__ import annotations

from typing import Any, List, Optional, Sequence

from .schemas import GradingResult, Mistake, MistakeReview, QuestionRecord, SanitizedQuestion


def sanitize_for_client(questions: Sequence[QuestionRecord]) -> List[SanitizedQuestion]:
    return [SanitizedQuestion(text=q.text, options=list(q.options), difficulty=q.difficulty) for q in questions]


def _as_index(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def score_percent(correct: int, total: int) -> int:
    """round(100 * correct / total), halves rounded up."""
    if total <= 0:
        return 0
    return (200 * correct + total) // (2 * total)


def grade(user_answers: Sequence[Any], correct_answers: Sequence[int]) -> GradingResult:
    """Pure scoring. A null or missing answer is wrong, never an error."""
    mistakes: List[Mistake] = []
    correct_count = 0
    for i, correct in enumerate(correct_answers):
        user = _as_index(user_answers[i]) if i < len(user_answers) else None
        if user is not None and user == correct:
            correct_count += 1
        else:
            mistakes.append(Mistake(question_index=i, user_answer_index=user, correct_answer_index=correct))

    total = len(correct_answers)
    return GradingResult(
        total_questions=total,
        correct_count=correct_count,
        wrong_count=total - correct_count,
        score_percent=score_percent(correct_count, total),
        mistakes=mistakes,
    )


def build_review(questions: Sequence[QuestionRecord], result: GradingResult) -> List[MistakeReview]:
    review: List[MistakeReview] = []
    for m in result.mistakes:
        q = questions[m.question_index]
        user_answer = None
        if m.user_answer_index is not None and 0 <= m.user_answer_index < len(q.options):
            user_answer = q.options[m.user_answer_index]
        review.append(
            MistakeReview(
                question_index=m.question_index,
                question=q.text,
                user_answer=user_answer,
                correct_answer=q.options[m.correct_answer_index],
                explanation=q.explanation,
            )
        )
    return review
