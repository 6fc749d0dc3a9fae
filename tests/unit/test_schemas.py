# =============================================================================
# TESTS - Data shapes
# =============================================================================

import pytest
from pydantic import ValidationError


class TestNormalizeText:
    """Comparison key."""

    def test_case_and_whitespace(self):
        from quizforge.schemas import normalize_text

        assert normalize_text("  The   Capital\nof France ") == "the capital of france"


class TestOptionSet:
    """Stage 2 item shape."""

    def test_aliases(self):
        from quizforge.schemas import OptionSet

        item = OptionSet.model_validate(
            {"questionNumber": 1, "options": ["a", "b", "c", "d"], "correctAnswerText": " b ", "extra": 1}
        )

        assert item.correct_answer_text == "b"
        assert item.question_number == 1

    @pytest.mark.parametrize(
        "options",
        [["a", "b", "c"], ["a", "b", "c", "d", "e"], ["a", "A", "c", "d"], ["a", "", "c", "d"], "a,b,c,d"],
    )
    def test_rejects_bad_options(self, options):
        from quizforge.schemas import OptionSet

        with pytest.raises(ValidationError):
            OptionSet.model_validate({"options": options, "correctAnswerText": "a"})

    def test_rejects_empty_answer(self):
        from quizforge.schemas import OptionSet

        with pytest.raises(ValidationError):
            OptionSet.model_validate({"options": ["a", "b", "c", "d"], "correctAnswerText": "  "})


class TestQuestionRecord:
    """Answer-key invariant at construction."""

    def test_from_reconciled(self):
        from quizforge.schemas import Difficulty, DraftQuestion, QuestionRecord

        draft = DraftQuestion(text="Q?", options=["w", "x", "y", "z"], correct_answer_text="Y", explanation="e")

        record = QuestionRecord.from_reconciled(draft, 2, Difficulty.EXPERT)

        assert record.correct_answer_index == 2
        assert record.difficulty == Difficulty.EXPERT

    def test_from_reconciled_mismatch(self):
        from quizforge.schemas import Difficulty, DraftQuestion, QuestionRecord

        draft = DraftQuestion(text="Q?", options=["w", "x", "y", "z"], correct_answer_text="y")

        with pytest.raises(ValueError):
            QuestionRecord.from_reconciled(draft, 0, Difficulty.EXPERT)

    def test_index_bounds(self):
        from quizforge.schemas import Difficulty, QuestionRecord

        with pytest.raises(ValidationError):
            QuestionRecord(
                text="Q?", options=["w", "x", "y", "z"], correct_answer_index=4, explanation="", difficulty=Difficulty.BEGINNER
            )


class TestRequests:
    """HTTP body validation."""

    def test_generate_defaults(self):
        from quizforge.schemas import Difficulty, GenerateQuizRequest

        req = GenerateQuizRequest(topic="Algebra")

        assert req.difficulty == Difficulty.INTERMEDIATE
        assert req.question_count == 5

    @pytest.mark.parametrize("count", [0, 21])
    def test_generate_count_bounds(self, count):
        from quizforge.schemas import GenerateQuizRequest

        with pytest.raises(ValidationError):
            GenerateQuizRequest(topic="Algebra", question_count=count)
