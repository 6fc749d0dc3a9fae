from __future__ import annotations
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from ..errors import CompletionError, PipelineError, SubmissionRejected
from ..schemas import (
	ActiveSession,
	GeneratedQuiz,
	GenerateQuizRequest,
	GradingResult,
	PracticeQuestionsRequest,
	PracticeQuestionsResponse,
	SubmitQuizRequest,
)
from ..service import ANONYMOUS_USER, QuizService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quiz", tags=["quiz"])

GENERATION_FAILED = "quiz generation failed, please try again"


def get_quiz_service(request: Request) -> QuizService:
	service = getattr(request.app.state, "quiz_service", None)
	if service is None:
		raise HTTPException(status_code=503, detail="quiz service is not ready")
	return service


@router.post("/generate", response_model=GeneratedQuiz)
async def generate_quiz(
	req: GenerateQuizRequest,
	x_user_id: Optional[str] = Header(default=None),
	service: QuizService = Depends(get_quiz_service),
):
	user_id = req.user_id or x_user_id or ANONYMOUS_USER
	try:
		return await service.generate_quiz(
			req.topic,
			req.difficulty,
			req.question_count,
			req.course_context,
			user_id=user_id,
			time_limit_seconds=req.time_limit_seconds,
		)
	except (PipelineError, CompletionError) as e:
		# the client never sees a partial quiz or the failure detail
		logger.error("Quiz generation failed for topic %r: %s", req.topic, e)
		raise HTTPException(status_code=502, detail=GENERATION_FAILED)


@router.post("/submit", response_model=GradingResult)
async def submit_quiz(req: SubmitQuizRequest, service: QuizService = Depends(get_quiz_service)):
	try:
		return await service.submit_quiz(
			req.session_id,
			req.session_hash,
			req.user_answers,
			start_time=req.start_time,
			time_limit_seconds=req.time_limit_seconds,
		)
	except SubmissionRejected as e:
		if e.message == SubmissionRejected.SESSION_NOT_FOUND:
			raise HTTPException(status_code=404, detail={"message": e.message})
		raise HTTPException(status_code=400, detail={"message": e.message, "errors": e.errors})


@router.get("/sessions", response_model=List[ActiveSession])
async def active_sessions(
	x_user_id: str = Header(min_length=1, max_length=128),
	service: QuizService = Depends(get_quiz_service),
):
	return await service.active_sessions(x_user_id)


@router.post("/practice-questions", response_model=PracticeQuestionsResponse)
async def practice_questions(req: PracticeQuestionsRequest, service: QuizService = Depends(get_quiz_service)):
	try:
		questions = await service.practice_questions(req.topic, req.context or "")
	except (PipelineError, CompletionError) as e:
		logger.error("Practice question generation failed for topic %r: %s", req.topic, e)
		raise HTTPException(status_code=502, detail="practice question generation failed")
	return PracticeQuestionsResponse(questions=questions)
