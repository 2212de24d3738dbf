from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Text, Float, Boolean, ForeignKey
from .db import Base


def _new_session_id() -> str:
	return str(uuid.uuid4())


class ProblemSession(Base):
	__tablename__ = "problem_sessions"
	# Server-generated at insert time
	id = Column(String(36), primary_key=True, default=_new_session_id)
	problem_text = Column(Text, nullable=False)
	correct_answer = Column(Float, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ProblemSubmission(Base):
	__tablename__ = "problem_submissions"
	id = Column(Integer, primary_key=True, autoincrement=True)
	# Reference only; several submissions may point at one session
	session_id = Column(String(36), ForeignKey("problem_sessions.id"), index=True, nullable=False)
	user_answer = Column(Float, nullable=False)
	is_correct = Column(Boolean, nullable=False)
	feedback_text = Column(Text, nullable=False, default="")
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
