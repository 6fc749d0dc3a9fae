from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ..usage import UsageTracker

router = APIRouter(prefix="/usage", tags=["usage"])


def get_usage_tracker(request: Request) -> UsageTracker:
	tracker = getattr(request.app.state, "usage_tracker", None)
	if tracker is None:
		raise HTTPException(status_code=503, detail="usage tracking is not ready")
	return tracker


@router.get("/summary")
def usage_summary(days: int = Query(default=30, ge=1, le=365), tracker: UsageTracker = Depends(get_usage_tracker)):
	return tracker.summary(days)
