from __future__ import annotations
from datetime import datetime
from sqlalchemy import BigInteger, Column, DateTime, Float, Integer, String, Text
from .db import Base


class QuizSessionRow(Base):
	__tablename__ = "quiz_sessions"
	session_id = Column(String(128), primary_key=True, index=True)
	user_id = Column(String(128), nullable=True, index=True)
	payload = Column(Text, nullable=False)  # JSON snapshot of the full QuizSession, answer key included
	# epoch milliseconds, compared with now > expires_at
	expires_at = Column(BigInteger, nullable=False, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class UsageRecord(Base):
	__tablename__ = "usage_records"
	id = Column(Integer, primary_key=True, autoincrement=True)
	model = Column(String(128), nullable=False, index=True)
	label = Column(String(128), nullable=False)
	input_tokens = Column(Integer, default=0, nullable=False)
	output_tokens = Column(Integer, default=0, nullable=False)
	cost_usd = Column(Float, default=0.0, nullable=False)
	cost_inr = Column(Float, default=0.0, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
