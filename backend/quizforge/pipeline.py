"""Multi-stage quiz generation.

Stages run strictly in order:

1. ``draft_questions``        N unique question strings
2. ``generate_options``       4 options + correct answer text for all N, one call
3. ``generate_explanations``  N explanations, one call, per-question fallback
4. ``fact_check``             verify/correct in mini-batches, then drop duplicates
5. ``reconcile``              locate the answer index; the only fatal stage

A stage whose output breaks its post-condition raises ``StageViolation`` and
is re-run (``stage_max_retries`` extra attempts, fixed delay). Transient
gateway failures are absorbed below that by ``with_retry``. Nothing partial
is ever returned.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, TypeVar

from pydantic import ValidationError

from . import prompts
from .errors import AnswerKeyError, CompletionError, PipelineError, StageViolation
from .llm_json import MalformedJSON, extract_json_array, strip_code_fence
from .model_config import stage_config
from .retry import Sleep, with_retry
from .schemas import Difficulty, DraftQuestion, FactCheckItem, OptionSet, QuestionRecord, normalize_text
from .settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

DRAFT = "draft_questions"
OPTIONS = "generate_options"
EXPLANATIONS = "generate_explanations"
FACT_CHECK = "fact_check"
RECONCILE = "reconcile"


class CompletionGateway(Protocol):
    async def generate(
        self,
        model: str,
        prompt: str,
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        label: str = "completion",
    ) -> str: ...


class QuizPipeline:
    def __init__(
        self,
        gateway: CompletionGateway,
        *,
        stage_max_retries: Optional[int] = None,
        stage_retry_delay: Optional[float] = None,
        fact_check_batch_size: Optional[int] = None,
        request_timeout: Optional[float] = None,
        pipeline_timeout: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.gateway = gateway
        self.stage_max_retries = settings.stage_max_retries if stage_max_retries is None else stage_max_retries
        self.stage_retry_delay = settings.stage_retry_delay_seconds if stage_retry_delay is None else stage_retry_delay
        self.fact_check_batch_size = max(1, fact_check_batch_size or settings.fact_check_batch_size)
        self.request_timeout = request_timeout or settings.request_timeout_seconds
        self.pipeline_timeout = settings.pipeline_timeout_seconds if pipeline_timeout is None else pipeline_timeout
        self._sleep = sleep

    # ------------------------------------------------------------------
    # orchestration
    # ------------------------------------------------------------------

    async def run(
        self,
        topic: str,
        difficulty: Difficulty,
        question_count: int,
        course_context: Optional[str] = None,
    ) -> List[QuestionRecord]:
        progress: Dict[str, str] = {"stage": DRAFT}
        try:
            if self.pipeline_timeout:
                return await asyncio.wait_for(
                    self._run(topic, difficulty, question_count, course_context, progress),
                    self.pipeline_timeout,
                )
            return await self._run(topic, difficulty, question_count, course_context, progress)
        except asyncio.TimeoutError as err:
            raise PipelineError(progress["stage"], "quiz generation timed out") from err

    async def _run(
        self,
        topic: str,
        difficulty: Difficulty,
        count: int,
        course_context: Optional[str],
        progress: Dict[str, str],
    ) -> List[QuestionRecord]:
        if count < 1:
            raise PipelineError(DRAFT, "question count must be at least 1")

        progress["stage"] = DRAFT
        questions = await self._run_stage(
            DRAFT, lambda: self.draft_questions(topic, difficulty, count, course_context)
        )

        progress["stage"] = OPTIONS
        option_sets = await self._run_stage(
            OPTIONS, lambda: self.generate_options(questions, topic, difficulty, course_context)
        )
        drafts = [
            DraftQuestion(text=q, options=o.options, correct_answer_text=o.correct_answer_text)
            for q, o in zip(questions, option_sets)
        ]

        progress["stage"] = EXPLANATIONS
        drafts = await self._run_stage(EXPLANATIONS, lambda: self.generate_explanations(drafts, topic))

        progress["stage"] = FACT_CHECK
        drafts = await self._run_stage(FACT_CHECK, lambda: self.fact_check(drafts, topic))

        progress["stage"] = RECONCILE
        records = self.reconcile(drafts, difficulty)

        logger.info("Generated %d verified questions for topic %r (%s)", len(records), topic, difficulty.value)
        for i, r in enumerate(records):
            logger.debug("Q%d %r answer=%s", i + 1, r.text, "ABCD"[r.correct_answer_index])
        return records

    async def _run_stage(self, stage: str, fn: Callable[[], Awaitable[T]]) -> T:
        attempts = 1 + max(0, self.stage_max_retries)
        for attempt in range(attempts):
            try:
                return await fn()
            except StageViolation as violation:
                if attempt >= attempts - 1:
                    raise PipelineError(stage, f"{violation} (after {attempts} attempts)") from violation
                logger.warning(
                    "Stage %s output rejected: %s. Re-running stage (attempt %d/%d)",
                    stage,
                    violation,
                    attempt + 2,
                    attempts,
                )
                await self._sleep(self.stage_retry_delay)
            except (CompletionError, asyncio.TimeoutError) as err:
                raise PipelineError(stage, f"completion failed: {err}") from err
        raise PipelineError(stage, "stage produced no result")

    async def _complete(self, stage: str, prompt: str, label: Optional[str] = None) -> str:
        cfg = stage_config(stage)
        label = label or stage

        async def call() -> str:
            return await asyncio.wait_for(
                self.gateway.generate(
                    cfg.model,
                    prompt,
                    temperature=cfg.temperature,
                    max_tokens=cfg.max_tokens,
                    label=label,
                ),
                self.request_timeout,
            )

        return await with_retry(call, label, sleep=self._sleep)

    # ------------------------------------------------------------------
    # stage 1
    # ------------------------------------------------------------------

    async def draft_questions(
        self,
        topic: str,
        difficulty: Difficulty,
        count: int,
        course_context: Optional[str] = None,
    ) -> List[str]:
        raw = await self._complete(DRAFT, prompts.draft_questions_prompt(topic, difficulty, count, course_context))
        items = _parse_array(DRAFT, raw)
        if len(items) != count:
            raise StageViolation(DRAFT, f"expected {count} questions, got {len(items)}")

        questions: List[str] = []
        seen: Dict[str, int] = {}
        for i, item in enumerate(items):
            text = _question_text(item)
            if not text:
                raise StageViolation(DRAFT, f"question {i + 1} is empty")
            key = normalize_text(text)
            if key in seen:
                raise StageViolation(DRAFT, f"question {i + 1} duplicates question {seen[key] + 1}")
            seen[key] = i
            questions.append(text)
        return questions

    # ------------------------------------------------------------------
    # stage 2
    # ------------------------------------------------------------------

    async def generate_options(
        self,
        questions: Sequence[str],
        topic: str,
        difficulty: Difficulty,
        course_context: Optional[str] = None,
    ) -> List[OptionSet]:
        n = len(questions)
        raw = await self._complete(OPTIONS, prompts.options_prompt(questions, topic, difficulty, course_context))
        items = _parse_array(OPTIONS, raw)
        if len(items) < n:
            raise StageViolation(OPTIONS, f"expected {n} option sets, got {len(items)}")
        if len(items) > n:
            logger.warning("Stage %s returned %d option sets for %d questions; dropping the extra", OPTIONS, len(items), n)
            items = items[:n]

        option_sets: List[OptionSet] = []
        for i, item in enumerate(items):
            try:
                option_set = OptionSet.model_validate(item)
            except ValidationError as err:
                raise StageViolation(OPTIONS, f"question {i + 1}: {_first_error(err)}") from err
            option_sets.append(_snap_answer(option_set))
        return option_sets

    # ------------------------------------------------------------------
    # stage 3
    # ------------------------------------------------------------------

    async def generate_explanations(self, drafts: Sequence[DraftQuestion], topic: str) -> List[DraftQuestion]:
        n = len(drafts)
        explanations: List[Optional[str]] = [None] * n
        try:
            raw = await self._complete(EXPLANATIONS, prompts.explanations_prompt(drafts, topic))
            items = extract_json_array(raw)
            if len(items) != n:
                raise MalformedJSON(f"expected {n} explanations, got {len(items)}")
            for i, item in enumerate(items):
                explanations[i] = _explanation_text(item) or None
        except (MalformedJSON, CompletionError, asyncio.TimeoutError) as err:
            logger.warning("Batch explanations failed (%s); generating them one by one", err)

        result: List[DraftQuestion] = []
        for i, draft in enumerate(drafts):
            text = explanations[i]
            if text is None:
                text = await self._single_explanation(draft, topic, i)
            result.append(draft.model_copy(update={"explanation": text}))
        return result

    async def _single_explanation(self, draft: DraftQuestion, topic: str, index: int) -> str:
        try:
            raw = await self._complete(
                EXPLANATIONS,
                prompts.single_explanation_prompt(draft, topic),
                label=f"{EXPLANATIONS}[{index + 1}]",
            )
            text = strip_code_fence(raw).strip().strip('"').strip()
            if text:
                return text
            logger.warning("Empty explanation for question %d; using fallback text", index + 1)
        except (CompletionError, asyncio.TimeoutError) as err:
            logger.warning("Explanation for question %d failed (%s); using fallback text", index + 1, err)
        return prompts.fallback_explanation(draft)

    # ------------------------------------------------------------------
    # stage 4
    # ------------------------------------------------------------------

    async def fact_check(self, drafts: Sequence[DraftQuestion], topic: str) -> List[DraftQuestion]:
        checked: List[DraftQuestion] = []
        size = self.fact_check_batch_size
        for start in range(0, len(drafts), size):
            batch = list(drafts[start : start + size])
            checked.extend(await self._fact_check_batch(batch, topic, start))
        return dedupe_questions(checked)

    async def _fact_check_batch(self, batch: List[DraftQuestion], topic: str, offset: int) -> List[DraftQuestion]:
        label = f"{FACT_CHECK}[{offset + 1}-{offset + len(batch)}]"
        raw = await self._complete(FACT_CHECK, prompts.fact_check_prompt(batch, topic), label=label)
        try:
            items = extract_json_array(raw)
        except MalformedJSON as err:
            logger.warning("%s: unparseable response (%s); keeping batch unchanged", label, err)
            return batch
        if len(items) != len(batch):
            logger.warning("%s: expected %d items, got %d; keeping batch unchanged", label, len(batch), len(items))
            return batch

        out: List[DraftQuestion] = []
        for i, (original, item) in enumerate(zip(batch, items)):
            number = offset + i + 1
            try:
                verdict = FactCheckItem.model_validate(item)
            except ValidationError as err:
                logger.warning("Fact-check item for question %d is invalid (%s); keeping original", number, _first_error(err))
                out.append(original)
                continue
            if not verdict.corrected:
                out.append(original)
                continue
            logger.info("Fact-check corrected question %d: %s", number, verdict.reason or "no reason given")
            out.append(
                DraftQuestion(
                    text=verdict.question,
                    options=verdict.options,
                    correct_answer_text=verdict.correct_answer_text,
                    explanation=verdict.explanation or original.explanation,
                )
            )
        return out

    # ------------------------------------------------------------------
    # stage 5
    # ------------------------------------------------------------------

    def reconcile(self, drafts: Sequence[DraftQuestion], difficulty: Difficulty) -> List[QuestionRecord]:
        records: List[QuestionRecord] = []
        for i, draft in enumerate(drafts):
            normalized = [normalize_text(o) for o in draft.options]
            if len(normalized) != 4 or len(set(normalized)) != 4:
                raise AnswerKeyError(RECONCILE, f"question {i + 1}: options are not 4 distinct values")
            target = normalize_text(draft.correct_answer_text)
            try:
                index = normalized.index(target)
            except ValueError:
                logger.error(
                    "Question %d: correct answer %r not among options %r",
                    i + 1,
                    draft.correct_answer_text,
                    draft.options,
                )
                raise AnswerKeyError(
                    RECONCILE, f"question {i + 1}: correct answer text not found in options"
                ) from None
            records.append(QuestionRecord.from_reconciled(draft, index, difficulty))
        return records


def dedupe_questions(drafts: Sequence[DraftQuestion]) -> List[DraftQuestion]:
    """Keep the first occurrence of each question text (normalized)."""
    seen = set()
    kept: List[DraftQuestion] = []
    for i, draft in enumerate(drafts):
        key = normalize_text(draft.text)
        if key in seen:
            logger.warning("Dropping duplicate question %d: %r", i + 1, draft.text)
            continue
        seen.add(key)
        kept.append(draft)
    return kept


def _parse_array(stage: str, raw: str) -> list:
    try:
        return extract_json_array(raw)
    except MalformedJSON as err:
        raise StageViolation(stage, str(err)) from err


def _question_text(item: Any) -> str:
    if isinstance(item, dict):
        item = item.get("question") or item.get("text") or ""
    if not isinstance(item, str):
        return ""
    return item.strip()


def _explanation_text(item: Any) -> str:
    if isinstance(item, dict):
        item = item.get("explanation") or item.get("text") or ""
    if not isinstance(item, (str, int, float)) or isinstance(item, bool):
        return ""
    return str(item).strip()


def _snap_answer(option_set: OptionSet) -> OptionSet:
    target = normalize_text(option_set.correct_answer_text)
    for option in option_set.options:
        if normalize_text(option) == target:
            if option != option_set.correct_answer_text:
                return option_set.model_copy(update={"correct_answer_text": option})
            return option_set
    logger.debug("Answer %r matches no option yet; left for later stages", option_set.correct_answer_text)
    return option_set


def _first_error(err: ValidationError) -> str:
    errors = err.errors()
    if not errors:
        return str(err)
    first = errors[0]
    loc = ".".join(str(p) for p in first.get("loc", ()))
    return f"{loc}: {first.get('msg')}" if loc else str(first.get("msg"))
