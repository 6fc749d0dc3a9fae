from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from .model_config import calculate_cost
from .models import UsageRecord
from .settings import settings

logger = logging.getLogger(__name__)


class UsageTracker:
    """Token and cost ledger for every completed model call.

    ``arecord`` matches the gateway's ``on_usage`` callback signature and runs
    the blocking commit in a worker thread.
    """

    def __init__(self, session_factory: sessionmaker, *, usd_to_inr: Optional[float] = None) -> None:
        self._session_factory = session_factory
        self.usd_to_inr = settings.usd_to_inr if usd_to_inr is None else usd_to_inr

    def record(self, model: str, label: str, input_tokens: int, output_tokens: int) -> Dict[str, Any]:
        cost = calculate_cost(model, input_tokens, output_tokens, usd_to_inr=self.usd_to_inr)
        with self._session_factory() as db:
            db.add(
                UsageRecord(
                    model=model,
                    label=label[:128],
                    input_tokens=input_tokens,
                    output_tokens=output_tokens,
                    cost_usd=cost["total_usd"],
                    cost_inr=cost["total_inr"],
                )
            )
            db.commit()
        logger.debug(
            "%s on %s: %d in / %d out tokens, $%.6f",
            label,
            model,
            input_tokens,
            output_tokens,
            cost["total_usd"],
        )
        return cost

    async def arecord(self, model: str, label: str, input_tokens: int, output_tokens: int) -> Dict[str, Any]:
        return await asyncio.to_thread(self.record, model, label, input_tokens, output_tokens)

    def summary(self, days: int = 30) -> Dict[str, Any]:
        since = datetime.utcnow() - timedelta(days=days)
        stmt = (
            select(
                UsageRecord.model,
                func.count(UsageRecord.id),
                func.coalesce(func.sum(UsageRecord.input_tokens), 0),
                func.coalesce(func.sum(UsageRecord.output_tokens), 0),
                func.coalesce(func.sum(UsageRecord.cost_usd), 0.0),
                func.coalesce(func.sum(UsageRecord.cost_inr), 0.0),
            )
            .where(UsageRecord.created_at >= since)
            .group_by(UsageRecord.model)
            .order_by(UsageRecord.model)
        )
        with self._session_factory() as db:
            rows = db.execute(stmt).all()

        models: List[Dict[str, Any]] = []
        for model, calls, input_tokens, output_tokens, usd, inr in rows:
            models.append(
                {
                    "model": model,
                    "calls": int(calls),
                    "input_tokens": int(input_tokens),
                    "output_tokens": int(output_tokens),
                    "total_tokens": int(input_tokens) + int(output_tokens),
                    "cost_usd": round(float(usd), 6),
                    "cost_inr": round(float(inr), 4),
                }
            )
        return {
            "days": days,
            "models": models,
            "total_calls": sum(m["calls"] for m in models),
            "total_tokens": sum(m["total_tokens"] for m in models),
            "total_cost_usd": round(sum(m["cost_usd"] for m in models), 6),
            "total_cost_inr": round(sum(m["cost_inr"] for m in models), 4),
        }
