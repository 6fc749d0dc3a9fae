"""Logging configuration for the quiz backend."""

from __future__ import annotations

import logging
from logging import Logger
from typing import Optional

from .settings import settings


def configure_logging(level: Optional[str] = None) -> Logger:
	"""Configure root logging once and return the package logger."""
	name = (level or settings.log_level or "INFO").upper()
	numeric = logging.getLevelName(name)
	if not isinstance(numeric, int):
		numeric = logging.INFO
	logging.basicConfig(
		level=numeric,
		format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
	)
	logging.getLogger().setLevel(numeric)
	# httpx logs request URLs, and AI Studio URLs carry the API key
	logging.getLogger("httpx").setLevel(max(numeric, logging.WARNING))
	return logging.getLogger("quizforge")
