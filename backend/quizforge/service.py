from __future__ import annotations

import logging
from typing import Any, List, Optional, Union

from .clock import Clock, now_ms
from .errors import CompletionError, PipelineError, SubmissionRejected
from .grading import build_review, grade, sanitize_for_client
from .llm_json import MalformedJSON, extract_json_array
from .model_config import stage_config
from .pipeline import CompletionGateway, QuizPipeline
from .prompts import practice_questions_prompt
from .retry import with_retry
from .schemas import ActiveSession, Difficulty, GeneratedQuiz, GradingResult, QuizSession
from .security import SessionSecurity, generate_session_id
from .session_store import SessionStore
from .settings import settings

logger = logging.getLogger(__name__)

ANONYMOUS_USER = "anonymous"
PRACTICE_STAGE = "practice_questions"
PRACTICE_QUESTION_COUNT = 5


class QuizService:
    """Generates quizzes, keeps their answer keys server-side and grades submissions."""

    def __init__(
        self,
        gateway: CompletionGateway,
        store: SessionStore,
        *,
        pipeline: Optional[QuizPipeline] = None,
        security: Optional[SessionSecurity] = None,
        clock: Clock = now_ms,
        default_time_limit_seconds: Optional[int] = None,
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.pipeline = pipeline or QuizPipeline(gateway)
        self.security = security or SessionSecurity()
        self._clock = clock
        self.default_time_limit_seconds = default_time_limit_seconds or settings.quiz_default_time_limit_seconds

    async def generate_quiz(
        self,
        topic: str,
        difficulty: Union[Difficulty, str],
        question_count: int,
        course_context: Optional[str] = None,
        *,
        user_id: str = ANONYMOUS_USER,
        time_limit_seconds: Optional[int] = None,
    ) -> GeneratedQuiz:
        difficulty = Difficulty(difficulty)
        time_limit = time_limit_seconds or self.default_time_limit_seconds
        user_id = user_id or ANONYMOUS_USER

        records = await self.pipeline.run(topic, difficulty, question_count, course_context)

        start_time = self._clock()
        session_id = generate_session_id(user_id, f"{topic}-{start_time}", clock=self._clock)
        session_hash = self.security.create_binding(session_id, start_time, time_limit)
        ttl = time_limit + self.security.grace_period_seconds
        session = QuizSession(
            session_id=session_id,
            session_hash=session_hash,
            questions=records,
            user_id=user_id,
            start_time=start_time,
            time_limit_seconds=time_limit,
            topic=topic,
            difficulty=difficulty,
            created_at=start_time,
            expires_at=start_time + ttl * 1000,
        )
        await self.store.put(session_id, session.model_dump(mode="json"), ttl)
        logger.info(
            "Quiz session %s created for user %s: %d questions, %ds limit",
            session_id[:12],
            user_id,
            len(records),
            time_limit,
        )
        return GeneratedQuiz(
            session_id=session_id,
            session_hash=session_hash,
            start_time=start_time,
            time_limit_seconds=time_limit,
            topic=topic,
            difficulty=difficulty,
            questions=sanitize_for_client(records),
        )

    async def submit_quiz(
        self,
        session_id: str,
        session_hash: str,
        user_answers: Any,
        submit_time: Optional[int] = None,
        *,
        start_time: Optional[int] = None,
        time_limit_seconds: Optional[int] = None,
    ) -> GradingResult:
        raw = await self.store.get(session_id)
        if raw is None:
            raise SubmissionRejected(SubmissionRejected.SESSION_NOT_FOUND)
        try:
            session = QuizSession.model_validate(raw)
        except ValueError as err:
            logger.error("Stored session %s is unreadable: %s", session_id[:12], err)
            raise SubmissionRejected(SubmissionRejected.SESSION_NOT_FOUND) from err

        validation = self.security.validate_submission(
            session_id=session_id,
            start_time=session.start_time if start_time is None else start_time,
            submit_time=self._clock() if submit_time is None else submit_time,
            time_limit_seconds=session.time_limit_seconds if time_limit_seconds is None else time_limit_seconds,
            supplied_hash=session_hash,
            user_answers=user_answers,
            correct_answer_count=len(session.questions),
        )
        if not validation.valid:
            raise SubmissionRejected(SubmissionRejected.INVALID_SUBMISSION, validation.errors)

        # single use: whoever deletes the session first is the one graded
        if not await self.store.delete(session_id):
            raise SubmissionRejected(SubmissionRejected.SESSION_NOT_FOUND)

        result = grade(user_answers, [q.correct_answer_index for q in session.questions])
        result = result.model_copy(update={"review": build_review(session.questions, result)})
        logger.info(
            "Graded session %s: %d/%d correct (%d%%) in %ds",
            session_id[:12],
            result.correct_count,
            result.total_questions,
            result.score_percent,
            validation.actual_elapsed_seconds,
        )
        return result

    async def active_sessions(self, user_id: str) -> List[ActiveSession]:
        sessions: List[ActiveSession] = []
        for raw in await self.store.list_active(user_id):
            try:
                session = QuizSession.model_validate(raw)
            except ValueError as err:
                logger.error("Skipping unreadable stored session for user %s: %s", user_id, err)
                continue
            sessions.append(
                ActiveSession(
                    session_id=session.session_id,
                    topic=session.topic,
                    difficulty=session.difficulty,
                    question_count=len(session.questions),
                    start_time=session.start_time,
                    time_limit_seconds=session.time_limit_seconds,
                    expires_at=session.expires_at,
                )
            )
        return sessions

    async def practice_questions(self, topic: str, context: Optional[str] = "") -> List[str]:
        cfg = stage_config(PRACTICE_STAGE)
        prompt = practice_questions_prompt(topic, context or None)
        try:
            raw = await with_retry(
                lambda: self.gateway.generate(
                    cfg.model,
                    prompt,
                    temperature=cfg.temperature,
                    max_tokens=cfg.max_tokens,
                    label=PRACTICE_STAGE,
                ),
                PRACTICE_STAGE,
            )
        except CompletionError as err:
            raise PipelineError(PRACTICE_STAGE, f"completion failed: {err}") from err
        try:
            items = extract_json_array(raw)
        except MalformedJSON as err:
            raise PipelineError(PRACTICE_STAGE, str(err)) from err
        questions = [q.strip() for q in items if isinstance(q, str) and q.strip()]
        if not questions:
            raise PipelineError(PRACTICE_STAGE, "model returned no practice questions")
        return questions[:PRACTICE_QUESTION_COUNT]
