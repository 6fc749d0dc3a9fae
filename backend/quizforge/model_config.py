from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageConfig:
    model: str
    temperature: float
    max_tokens: Optional[int] = None


# Quiz generation stages. Questions use the cheaper model; everything that
# decides or checks the answer key uses the stronger one.
QUIZ_STAGES: Dict[str, StageConfig] = {
    "draft_questions": StageConfig(model="gemini-2.5-flash-lite", temperature=0.7, max_tokens=2048),
    "generate_options": StageConfig(model="gemini-2.5-flash", temperature=0.3, max_tokens=8192),
    "generate_explanations": StageConfig(model="gemini-2.5-flash", temperature=0.3, max_tokens=8192),
    "fact_check": StageConfig(model="gemini-2.5-flash", temperature=0.1, max_tokens=8192),
    "practice_questions": StageConfig(model="gemini-2.5-flash-lite", temperature=0.8, max_tokens=2048),
}

DEFAULT_STAGE = StageConfig(model="gemini-2.5-flash", temperature=0.7)


def stage_config(stage: str) -> StageConfig:
    cfg = QUIZ_STAGES.get(stage)
    if cfg is None:
        logger.warning("No config for quiz stage %s, using default", stage)
        return DEFAULT_STAGE
    return cfg


# USD per 1M tokens
MODEL_PRICING: Dict[str, Dict[str, float]] = {
    "gemini-2.5-pro": {"input": 1.25, "output": 10.0},
    "gemini-2.5-flash": {"input": 0.3, "output": 2.5},
    "gemini-2.5-flash-lite": {"input": 0.1, "output": 0.4},
    "gemini-2.0-flash": {"input": 0.1, "output": 0.4},
    "gemini-2.0-flash-lite": {"input": 0.075, "output": 0.3},
    "gemini-1.5-flash": {"input": 0.075, "output": 0.3},
    "gemini-1.5-pro": {"input": 1.25, "output": 5.0},
}

PRICING_FALLBACK_MODEL = "gemini-2.0-flash"


def model_pricing(model: str) -> Dict[str, float]:
    pricing = MODEL_PRICING.get(model)
    if pricing is None:
        # local models and unknown ids are priced like the fallback model
        logger.debug("No pricing for model %s, using %s", model, PRICING_FALLBACK_MODEL)
        return MODEL_PRICING[PRICING_FALLBACK_MODEL]
    return pricing


def calculate_cost(model: str, input_tokens: int, output_tokens: int, *, usd_to_inr: float = 88.58) -> Dict[str, Any]:
    pricing = model_pricing(model)
    input_usd = input_tokens / 1_000_000 * pricing["input"]
    output_usd = output_tokens / 1_000_000 * pricing["output"]
    total_usd = input_usd + output_usd
    return {
        "model": model,
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "total_tokens": input_tokens + output_tokens,
        "input_usd": input_usd,
        "output_usd": output_usd,
        "total_usd": total_usd,
        "total_inr": total_usd * usd_to_inr,
    }
