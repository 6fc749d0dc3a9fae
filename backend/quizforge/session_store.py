"""Key/value storage with per-key expiry for quiz sessions.

Both the lazy path (an expired read deletes the entry and reports a miss)
and the periodic sweep use ``is_expired`` so they never disagree.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

from .cleanup import purge_expired_sessions
from .clock import Clock, now_ms
from .models import QuizSessionRow
from .settings import settings

logger = logging.getLogger(__name__)


def is_expired(expires_at: int, now: int) -> bool:
    return now > expires_at


class SessionStore(ABC):
    @abstractmethod
    async def put(self, key: str, value: Dict[str, Any], ttl_seconds: int) -> None: ...

    @abstractmethod
    async def get(self, key: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    async def delete(self, key: str) -> bool: ...

    @abstractmethod
    async def list_active(self, user_id: str) -> List[Dict[str, Any]]:
        """Unexpired values whose ``user_id`` matches, latest expiry first."""

    @abstractmethod
    async def sweep_expired(self) -> int: ...

    async def aclose(self) -> None:
        return None


class InMemorySessionStore(SessionStore):
    """Single-process store. Entries are copied in and out so callers cannot mutate them."""

    def __init__(self, clock: Clock = now_ms) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[Dict[str, Any], int]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def put(self, key: str, value: Dict[str, Any], ttl_seconds: int) -> None:
        self._entries[key] = (copy.deepcopy(value), self._clock() + ttl_seconds * 1000)

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if is_expired(expires_at, self._clock()):
            self._entries.pop(key, None)
            logger.debug("Session %s expired on read", key[:12])
            return None
        return copy.deepcopy(value)

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def sweep_expired(self) -> int:
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._entries.items() if is_expired(expires_at, now)]
        for key in expired:
            self._entries.pop(key, None)
        return len(expired)

    async def list_active(self, user_id: str) -> List[Dict[str, Any]]:
        now = self._clock()
        live = [
            (expires_at, value)
            for value, expires_at in self._entries.values()
            if value.get("user_id") == user_id and not is_expired(expires_at, now)
        ]
        live.sort(key=lambda pair: pair[0], reverse=True)
        return [copy.deepcopy(value) for _, value in live]


class SqlSessionStore(SessionStore):
    """SQLAlchemy-backed store; blocking ORM work runs in a worker thread."""

    def __init__(self, session_factory: sessionmaker, clock: Clock = now_ms) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def put(self, key: str, value: Dict[str, Any], ttl_seconds: int) -> None:
        expires_at = self._clock() + ttl_seconds * 1000
        payload = json.dumps(value)
        await asyncio.to_thread(self._put, key, value.get("user_id"), payload, expires_at)

    def _put(self, key: str, user_id: Optional[str], payload: str, expires_at: int) -> None:
        with self._session_factory() as db:
            db.merge(QuizSessionRow(session_id=key, user_id=user_id, payload=payload, expires_at=expires_at))
            db.commit()

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._get, key, self._clock())

    def _get(self, key: str, now: int) -> Optional[Dict[str, Any]]:
        with self._session_factory() as db:
            row = db.get(QuizSessionRow, key)
            if row is None:
                return None
            if is_expired(row.expires_at, now):
                db.delete(row)
                db.commit()
                logger.debug("Session %s expired on read", key[:12])
                return None
            return json.loads(row.payload)

    async def delete(self, key: str) -> bool:
        return await asyncio.to_thread(self._delete, key)

    def _delete(self, key: str) -> bool:
        with self._session_factory() as db:
            res = db.execute(delete(QuizSessionRow).where(QuizSessionRow.session_id == key))
            db.commit()
            return bool(res.rowcount)

    async def sweep_expired(self) -> int:
        return await asyncio.to_thread(self._sweep, self._clock())

    def _sweep(self, now: int) -> int:
        with self._session_factory() as db:
            return purge_expired_sessions(db, now)

    async def list_active(self, user_id: str) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._list_active, user_id, self._clock())

    def _list_active(self, user_id: str, now: int) -> List[Dict[str, Any]]:
        stmt = (
            select(QuizSessionRow.payload)
            .where(QuizSessionRow.user_id == user_id, QuizSessionRow.expires_at >= now)
            .order_by(QuizSessionRow.expires_at.desc())
        )
        with self._session_factory() as db:
            return [json.loads(payload) for payload in db.execute(stmt).scalars()]


def build_session_store(backend: Optional[str] = None, session_factory: Optional[sessionmaker] = None) -> SessionStore:
    backend = (backend or settings.session_backend).lower()
    if backend == "memory":
        return InMemorySessionStore()
    if backend == "sql":
        if session_factory is None:
            from .db import SessionLocal

            session_factory = SessionLocal
        return SqlSessionStore(session_factory)
    raise ValueError(f"Unknown SESSION_BACKEND {backend!r}; expected 'sql' or 'memory'")
