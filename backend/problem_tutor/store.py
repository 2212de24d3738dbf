from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .errors import NotFoundError, StoreError
from .models import ProblemSession, ProblemSubmission


@dataclass(frozen=True)
class SessionRecord:
	id: str
	problem_text: str
	correct_answer: float


class ProblemSessionStore:
	def __init__(self, session_factory: sessionmaker) -> None:
		self._session_factory = session_factory

	def create(self, problem_text: str, correct_answer: float) -> str:
		with self._session_factory() as db:
			try:
				row = ProblemSession(problem_text=problem_text, correct_answer=float(correct_answer))
				db.add(row)
				db.commit()
				session_id = row.id
			except SQLAlchemyError as err:
				db.rollback()
				raise StoreError(f"Could not create problem session: {err}") from err
		if not session_id:
			raise StoreError("Problem session insert returned no row")
		return session_id

	def fetch(self, session_id: str) -> SessionRecord:
		with self._session_factory() as db:
			try:
				row: Optional[ProblemSession] = db.get(ProblemSession, session_id)
			except SQLAlchemyError as err:
				raise StoreError(f"Could not load problem session: {err}") from err
			if row is None:
				raise NotFoundError(f"Problem session {session_id} not found")
			return SessionRecord(id=row.id, problem_text=row.problem_text, correct_answer=row.correct_answer)


class SubmissionStore:
	def __init__(self, session_factory: sessionmaker) -> None:
		self._session_factory = session_factory

	def create(self, session_id: str, user_answer: float, is_correct: bool, feedback_text: str) -> int:
		with self._session_factory() as db:
			try:
				row = ProblemSubmission(
					session_id=session_id,
					user_answer=float(user_answer),
					is_correct=bool(is_correct),
					feedback_text=feedback_text,
				)
				db.add(row)
				db.commit()
				return row.id
			except SQLAlchemyError as err:
				db.rollback()
				raise StoreError(f"Could not save submission for session {session_id}: {err}") from err
