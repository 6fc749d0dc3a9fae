from __future__ import annotations
import asyncio
import logging

from fastapi import FastAPI

from .cleanup import cleanup_watcher
from .db import Base, SessionLocal, engine
from .gemini_client import GeminiClient
from .logging_config import configure_logging
from .routers import quiz, usage
from .service import QuizService
from .session_store import build_session_store
from .settings import settings
from .usage import UsageTracker

logger = logging.getLogger(__name__)

app = FastAPI(title="Quizforge API")
app.include_router(quiz.router)
app.include_router(usage.router)


@app.get("/info")
def root():
	return {
		"status": "ok",
		"gemini_configured": bool(settings.gemini_api_key),
		"local_fallback_enabled": settings.local_fallback_enabled,
		"session_backend": settings.session_backend,
	}


@app.on_event("startup")
async def startup_event():
	configure_logging()
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)

	tracker = UsageTracker(SessionLocal)
	gateway = GeminiClient(on_usage=tracker.arecord)
	store = build_session_store()
	app.state.usage_tracker = tracker
	app.state.gateway = gateway
	app.state.session_store = store
	app.state.quiz_service = QuizService(gateway, store)

	# Start periodic sweep of expired sessions
	app.state.cleanup_task = asyncio.create_task(
		cleanup_watcher(store, settings.session_sweep_interval_seconds)
	)
	logger.info(
		"Quizforge started (gemini=%s, fallback=%s, sessions=%s)",
		bool(settings.gemini_api_key),
		gateway.fallback_enabled,
		settings.session_backend,
	)


@app.on_event("shutdown")
async def shutdown_event():
	task = getattr(app.state, "cleanup_task", None)
	if task is not None:
		task.cancel()
		try:
			await task
		except asyncio.CancelledError:
			pass
	gateway = getattr(app.state, "gateway", None)
	if gateway is not None:
		await gateway.aclose()
	store = getattr(app.state, "session_store", None)
	if store is not None:
		await store.aclose()


def serve(host: str = "0.0.0.0", port: int = 8000) -> None:
	import uvicorn

	uvicorn.run("quizforge.main:app", host=host, port=port)
