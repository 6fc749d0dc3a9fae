from __future__ import annotations
import asyncio
import logging
from typing import TYPE_CHECKING
from sqlalchemy import delete
from sqlalchemy.orm import Session

from .models import QuizSessionRow

if TYPE_CHECKING:
	from .session_store import SessionStore

logger = logging.getLogger(__name__)


def purge_expired_sessions(db: Session, now: int) -> int:
	# same predicate as session_store.is_expired: now > expires_at
	res = db.execute(delete(QuizSessionRow).where(QuizSessionRow.expires_at < now))
	db.commit()
	return res.rowcount or 0


async def sweep_sessions(store: "SessionStore") -> int:
	try:
		removed = await store.sweep_expired()
	except Exception:
		logger.exception("Session sweep failed")
		return 0
	if removed:
		logger.info("Swept %d expired quiz sessions", removed)
	return removed


async def cleanup_watcher(store: "SessionStore", interval_seconds: float) -> None:
	# Run once at startup, then every interval
	await sweep_sessions(store)
	while True:
		await asyncio.sleep(interval_seconds)
		await sweep_sessions(store)
