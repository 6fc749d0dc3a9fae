# =============================================================================
# TESTS - Session security
# =============================================================================
# HMAC binding, submission validation and session ids
# =============================================================================

import pytest

START = 1_700_000_000_000


@pytest.fixture
def security():
    from quizforge.security import SessionSecurity

    return SessionSecurity("unit-test-secret", grace_period_seconds=5)


def _validate(security, **overrides):
    params = {
        "session_id": "s1",
        "start_time": START,
        "submit_time": START + 60_000,
        "time_limit_seconds": 600,
        "supplied_hash": security.create_binding("s1", START, 600),
        "user_answers": [0, 1, None],
        "correct_answer_count": 3,
    }
    params.update(overrides)
    return security.validate_submission(**params)


class TestBinding:
    """Binding creation and verification."""

    def test_deterministic(self, security):
        assert security.create_binding("s1", 1000, 600) == security.create_binding("s1", 1000, 600)

    def test_hex_sha256(self, security):
        digest = security.create_binding("s1", 1000, 600)

        assert len(digest) == 64
        int(digest, 16)

    def test_round_trip(self, security):
        digest = security.create_binding("s1", 1000, 600)

        assert security.verify_binding("s1", 1000, 600, digest) is True

    def test_time_limit_tampered(self, security):
        digest = security.create_binding("s1", 1000, 600)

        assert security.verify_binding("s1", 1000, 601, digest) is False

    @pytest.mark.parametrize(
        "session_id,start_time,time_limit",
        [("s2", 1000, 600), ("s1", 999, 600), ("s1", 1000, 599)],
    )
    def test_any_field_tampered(self, security, session_id, start_time, time_limit):
        digest = security.create_binding("s1", 1000, 600)

        assert security.verify_binding(session_id, start_time, time_limit, digest) is False

    def test_hash_tampered(self, security):
        digest = security.create_binding("s1", 1000, 600)
        flipped = ("0" if digest[0] != "0" else "1") + digest[1:]

        assert security.verify_binding("s1", 1000, 600, flipped) is False
        assert security.verify_binding("s1", 1000, 600, digest[:-1]) is False
        assert security.verify_binding("s1", 1000, 600, "") is False

    def test_secret_matters(self, security):
        from quizforge.security import SessionSecurity

        other = SessionSecurity("another-secret")

        assert other.create_binding("s1", 1000, 600) != security.create_binding("s1", 1000, 600)

    def test_default_secret_from_settings(self):
        from quizforge.security import SessionSecurity

        a = SessionSecurity()
        b = SessionSecurity()

        assert a.create_binding("s1", 1000, 600) == b.create_binding("s1", 1000, 600)


class TestValidateSubmission:
    """Submission checks, all collected."""

    def test_valid(self, security):
        result = _validate(security)

        assert result.valid is True
        assert result.errors == []
        assert result.actual_elapsed_seconds == 60

    def test_accepts_exactly_at_boundary(self, security):
        result = _validate(security, submit_time=START + (600 + 5) * 1000)

        assert result.valid is True
        assert result.actual_elapsed_seconds == 605

    def test_rejects_one_ms_past_boundary(self, security):
        from quizforge.security import TIME_LIMIT_EXCEEDED

        result = _validate(security, submit_time=START + (600 + 5) * 1000 + 1)

        assert result.valid is False
        assert result.errors == [TIME_LIMIT_EXCEEDED]

    def test_submit_before_start(self, security):
        from quizforge.security import INVALID_SUBMISSION_TIME

        result = _validate(security, submit_time=START - 1)

        assert result.errors == [INVALID_SUBMISSION_TIME]

    def test_bad_hash(self, security):
        from quizforge.security import INVALID_SESSION

        result = _validate(security, supplied_hash="deadbeef")

        assert result.errors == [INVALID_SESSION]

    def test_answers_not_a_list(self, security):
        from quizforge.security import INVALID_ANSWER_FORMAT

        result = _validate(security, user_answers={"0": 1})

        assert result.errors == [INVALID_ANSWER_FORMAT]

    def test_answer_count_mismatch(self, security):
        from quizforge.security import ANSWER_COUNT_MISMATCH

        result = _validate(security, user_answers=[0, 1])

        assert result.errors == [ANSWER_COUNT_MISMATCH]

    @pytest.mark.parametrize("bad", [4, -1, "1", 1.0, True])
    def test_invalid_answer_values(self, security, bad):
        result = _validate(security, user_answers=[0, bad, None])

        assert result.errors == ["Invalid answer value at question 2"]

    def test_all_errors_collected_in_order(self, security):
        from quizforge.security import (
            ANSWER_COUNT_MISMATCH,
            INVALID_SESSION,
            TIME_LIMIT_EXCEEDED,
        )

        result = _validate(
            security,
            supplied_hash="nope",
            submit_time=START + 700_000,
            user_answers=[9, None],
        )

        assert result.valid is False
        assert result.errors == [
            INVALID_SESSION,
            TIME_LIMIT_EXCEEDED,
            ANSWER_COUNT_MISMATCH,
            "Invalid answer value at question 1",
        ]


class TestSessionId:
    """Session id generation."""

    def test_unique_for_same_inputs(self):
        from quizforge.security import generate_session_id

        clock = lambda: START  # noqa: E731

        ids = {generate_session_id("u1", "topic", clock=clock) for _ in range(20)}

        assert len(ids) == 20

    def test_sha256_hex(self):
        from quizforge.security import generate_session_id

        session_id = generate_session_id("u1", "topic")

        assert len(session_id) == 64
        int(session_id, 16)
