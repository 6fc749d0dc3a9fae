from __future__ import annotations

import json
from typing import Optional, Sequence

from .schemas import DraftQuestion, Difficulty

DIFFICULTY_GUIDELINES = {
    Difficulty.BEGINNER: "Focus on basic concepts, definitions, and fundamental understanding.",
    Difficulty.INTERMEDIATE: "Include application of concepts, comparison between ideas, and understanding of relationships.",
    Difficulty.ADVANCED: "Focus on synthesis, evaluation, and problem-solving requiring critical thinking.",
    Difficulty.EXPERT: "Include complex scenarios, edge cases, and deep technical understanding requiring expert-level reasoning.",
}


def _context_block(course_context: Optional[str], heading: str = "Course Context") -> str:
    return f"{heading}:\n{course_context}\n\n" if course_context else ""


def draft_questions_prompt(topic: str, difficulty: Difficulty, count: int, course_context: Optional[str]) -> str:
    return (
        f'Generate ONLY {count} clear, unambiguous quiz questions for the topic: "{topic}".\n\n'
        f"Difficulty Level: {difficulty.value}\n"
        f"Guidelines: {DIFFICULTY_GUIDELINES[difficulty]}\n\n"
        f"{_context_block(course_context)}"
        "Requirements:\n"
        f"1. Each question must test {difficulty.value}-level understanding\n"
        "2. Questions must be diverse; no two questions may ask the same thing\n"
        "3. Avoid trick questions or ambiguous wording\n"
        "4. Do NOT include options or answers yet\n\n"
        "Return ONLY a JSON array of question strings, no markdown:\n"
        '["Question 1 text?", "Question 2 text?"]\n\n'
        f"Generate EXACTLY {count} questions."
    )


def options_prompt(questions: Sequence[str], topic: str, difficulty: Difficulty, course_context: Optional[str]) -> str:
    listing = numbered(questions)
    return (
        f"For these {len(questions)} quiz questions, generate exactly 4 multiple-choice options for EACH.\n\n"
        f'Topic: "{topic}"\n'
        f"Difficulty: {difficulty.value}\n"
        f"{_context_block(course_context, 'Context')}"
        f"Questions:\n{listing}\n\n"
        "Requirements for EACH question:\n"
        "1. EXACTLY 4 distinct options, only ONE of them correct\n"
        "2. Incorrect options must be plausible but clearly wrong\n"
        "3. Options should be similar in length and complexity\n"
        "4. Double-check numerical values, formulas and terminology before deciding\n\n"
        "Return ONLY a JSON array, one object per question, in the same order:\n"
        '[{"questionNumber": 1, "options": ["A", "B", "C", "D"], "correctAnswerText": "exact text of the correct option"}]\n\n'
        "CRITICAL: correctAnswerText MUST be character-for-character one of the 4 options. "
        f"Return entries for ALL {len(questions)} questions."
    )


def _format_drafts(drafts: Sequence[DraftQuestion], *, with_explanation: bool = False) -> str:
    blocks = []
    for i, d in enumerate(drafts):
        block = (
            f'Question {i + 1}: "{d.text}"\n'
            f"Options: {json.dumps(d.options, ensure_ascii=False)}\n"
            f'Correct Answer: "{d.correct_answer_text}"'
        )
        if with_explanation:
            block += f'\nExplanation: "{d.explanation}"'
        blocks.append(block)
    return "\n\n".join(blocks)


def explanations_prompt(drafts: Sequence[DraftQuestion], topic: str) -> str:
    return (
        f"Provide clear, educational explanations for these {len(drafts)} quiz questions.\n\n"
        f'Topic: "{topic}"\n\n'
        f"{_format_drafts(drafts)}\n\n"
        "For EACH explanation:\n"
        "1. Explain WHY the correct answer is correct\n"
        "2. Briefly say why the other options are wrong\n"
        "3. Keep it to 2-4 sentences and strictly factual\n\n"
        "Return ONLY a JSON array of explanation strings in the SAME ORDER as the questions.\n"
        f"Generate EXACTLY {len(drafts)} explanations."
    )


def single_explanation_prompt(draft: DraftQuestion, topic: str) -> str:
    return (
        f'Explain in 2-4 sentences why "{draft.correct_answer_text}" is the correct answer '
        f'to this quiz question about "{topic}".\n\n'
        f"{_format_drafts([draft])}\n\n"
        "Return ONLY the explanation text, no JSON, no markdown."
    )


def fact_check_prompt(drafts: Sequence[DraftQuestion], topic: str) -> str:
    return (
        f'You are fact-checking {len(drafts)} multiple-choice quiz questions about "{topic}".\n\n'
        f"{_format_drafts(drafts, with_explanation=True)}\n\n"
        "For EACH question verify that:\n"
        "- the question is factually sound and unambiguous\n"
        "- exactly one option is correct and it is the stated correct answer\n"
        "- the 4 options are distinct\n"
        "- the explanation agrees with the correct answer\n"
        "If anything is wrong, rewrite the question, options, correct answer and/or explanation.\n\n"
        "Return ONLY a JSON array with one object per question, in the same order:\n"
        '[{"question": "...", "options": ["A", "B", "C", "D"], "correctAnswerText": "exact option text", '
        '"explanation": "...", "corrected": false, "reason": "why it was changed, or empty"}]\n\n'
        f"Return EXACTLY {len(drafts)} objects."
    )


def practice_questions_prompt(topic: str, context: Optional[str]) -> str:
    return (
        f'Generate 5 thoughtful practice questions about: "{topic}"\n\n'
        f"{_context_block(context, 'Context')}"
        "Requirements:\n"
        "1. Encourage critical thinking\n"
        "2. Mix conceptual, application-based and analytical questions\n"
        "3. Open-ended; no multiple-choice options\n\n"
        'Return ONLY a JSON array of question strings: ["Question 1?", "Question 2?"]'
    )


def fallback_explanation(draft: DraftQuestion) -> str:
    return f"The correct answer is {draft.correct_answer_text}."


def numbered(questions: Sequence[str]) -> str:
    return "\n".join(f"{i + 1}. {q}" for i, q in enumerate(questions))
