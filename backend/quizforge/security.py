"""Session binding and submission validation.

The client never sees the answer key, and every value that decides a score
(which session, when it started, how long it may run) travels through the
client only alongside an HMAC the client cannot forge.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from functools import lru_cache
from typing import Any, List, Optional

from .clock import Clock, now_ms
from .schemas import SubmissionValidation
from .settings import settings

logger = logging.getLogger(__name__)

INVALID_SESSION = "Invalid quiz session"
TIME_LIMIT_EXCEEDED = "Time limit exceeded"
INVALID_SUBMISSION_TIME = "Invalid submission time"
INVALID_ANSWER_FORMAT = "Invalid answer format"
ANSWER_COUNT_MISMATCH = "Answer count mismatch"


@lru_cache(maxsize=1)
def _ephemeral_secret() -> str:
    logger.warning(
        "QUIZ_SECRET_KEY is not set; using a random per-process secret. "
        "Outstanding quiz sessions will not validate after a restart."
    )
    return secrets.token_hex(32)


def generate_session_id(user_id: str, quiz_seed: str, *, clock: Clock = now_ms) -> str:
    material = f"{user_id}-{quiz_seed}-{clock()}-{secrets.token_hex(16)}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def _is_answer_index(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 3


class SessionSecurity:
    def __init__(self, secret: Optional[str] = None, *, grace_period_seconds: Optional[int] = None) -> None:
        key = secret or settings.quiz_secret_key or _ephemeral_secret()
        self._key = key.encode("utf-8")
        self.grace_period_seconds = (
            settings.quiz_grace_period_seconds if grace_period_seconds is None else grace_period_seconds
        )

    def create_binding(self, session_id: str, start_time: int, time_limit_seconds: int) -> str:
        message = f"{session_id}-{start_time}-{time_limit_seconds}".encode("utf-8")
        return hmac.new(self._key, message, hashlib.sha256).hexdigest()

    def verify_binding(self, session_id: str, start_time: int, time_limit_seconds: int, supplied_hash: str) -> bool:
        if not isinstance(supplied_hash, str) or not supplied_hash:
            return False
        expected = self.create_binding(session_id, start_time, time_limit_seconds)
        return hmac.compare_digest(expected.encode("ascii"), supplied_hash.encode("utf-8"))

    def validate_submission(
        self,
        *,
        session_id: str,
        start_time: int,
        submit_time: int,
        time_limit_seconds: int,
        supplied_hash: str,
        user_answers: Any,
        correct_answer_count: int,
    ) -> SubmissionValidation:
        """Run every check and collect all failures.

        Checks, in order: binding, elapsed time within limit plus grace,
        answers list of the right length, each non-null answer an index 0..3.
        """
        errors: List[str] = []

        if not self.verify_binding(session_id, start_time, time_limit_seconds, supplied_hash):
            errors.append(INVALID_SESSION)

        elapsed_ms = submit_time - start_time
        if elapsed_ms < 0:
            errors.append(INVALID_SUBMISSION_TIME)
        elif elapsed_ms > (time_limit_seconds + self.grace_period_seconds) * 1000:
            errors.append(TIME_LIMIT_EXCEEDED)

        if not isinstance(user_answers, list):
            errors.append(INVALID_ANSWER_FORMAT)
        else:
            if len(user_answers) != correct_answer_count:
                errors.append(ANSWER_COUNT_MISMATCH)
            for i, answer in enumerate(user_answers):
                if answer is not None and not _is_answer_index(answer):
                    errors.append(f"Invalid answer value at question {i + 1}")

        if errors:
            logger.info("Submission for session %s rejected: %s", session_id[:12], "; ".join(errors))
        return SubmissionValidation(
            valid=not errors,
            errors=errors,
            actual_elapsed_seconds=elapsed_ms // 1000,
        )
