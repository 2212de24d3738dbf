from __future__ import annotations
import asyncio
import logging
import math
import random
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional, Sequence, Tuple

from .curriculum import TOPIC_POOL, DifficultyLevel, TopicGroup, concept_count, sample_topics
from .errors import GatewayError
from .prompts import build_feedback_request, build_problem_request
from .store import ProblemSessionStore, SessionRecord, SubmissionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeneratedProblem:
	problem_text: str
	correct_answer: float
	session_id: str


@dataclass
class FeedbackStream:
	is_correct: bool
	fragments: AsyncIterator[str]


def answers_match(correct_answer: float, user_answer: float) -> bool:
	# Exact numeric equality: 0.10 and 0.1 match, 0.333 and 1/3 do not
	return float(correct_answer) == float(user_answer)


class ProblemGenerationService:
	def __init__(
		self,
		gateway: Any,
		sessions: ProblemSessionStore,
		*,
		pool: Sequence[TopicGroup] = TOPIC_POOL,
		rng: Optional[random.Random] = None,
	) -> None:
		self.gateway = gateway
		self.sessions = sessions
		self.pool = pool
		self.rng = rng

	async def generate(self, level: DifficultyLevel) -> GeneratedProblem:
		topics = sample_topics(self.pool, concept_count(level), self.rng)
		request = build_problem_request(level, topics)
		result = await self.gateway.generate_once(request)
		problem_text = str(result["problem_text"]).strip()
		if not problem_text:
			raise GatewayError("Model returned an empty problem_text")
		correct_answer = float(result["correct_answer"])
		if not math.isfinite(correct_answer):
			raise GatewayError(f"Model returned a non-finite correct_answer: {correct_answer!r}")
		session_id = self.sessions.create(problem_text, correct_answer)
		logger.info(
			"Created problem session %s (%s: %s)",
			session_id,
			level.value,
			", ".join(t.primary_concept for t in topics),
		)
		return GeneratedProblem(problem_text=problem_text, correct_answer=correct_answer, session_id=session_id)


class AnswerEvaluationService:
	"""Checks an answer and produces tutoring feedback for it.

	Every evaluation of an existing session writes exactly one submission row,
	after feedback generation has ended, whether it finished, failed partway or
	was abandoned by the client. Repeated submissions for one session each get
	their own row.
	"""

	def __init__(self, gateway: Any, sessions: ProblemSessionStore, submissions: SubmissionStore) -> None:
		self.gateway = gateway
		self.sessions = sessions
		self.submissions = submissions

	def _prepare(self, session_id: str, user_answer: float, *, structured: bool) -> Tuple[SessionRecord, bool, Any]:
		record = self.sessions.fetch(session_id)
		is_correct = answers_match(record.correct_answer, user_answer)
		request = build_feedback_request(
			record.problem_text,
			record.correct_answer,
			user_answer,
			is_correct,
			structured=structured,
		)
		return record, is_correct, request

	def _finalize(self, session_id: str, user_answer: float, is_correct: bool, feedback_text: str) -> None:
		try:
			self.submissions.create(session_id, user_answer, is_correct, feedback_text)
		except Exception:
			logger.exception("Failed to save submission for session %s", session_id)

	async def evaluate(self, session_id: str, user_answer: float) -> FeedbackStream:
		"""Start streaming feedback.

		Raises before returning when the session is unknown or the model fails
		before its first fragment, so callers can still answer with an error.
		Later failures only cut the stream short.
		"""
		record, is_correct, request = self._prepare(session_id, user_answer, structured=False)
		fragments = self.gateway.generate_stream(request).__aiter__()
		try:
			first: Optional[str] = await fragments.__anext__()
		except StopAsyncIteration:
			first = None
		except BaseException:
			self._finalize(record.id, user_answer, is_correct, "")
			raise
		return FeedbackStream(
			is_correct=is_correct,
			fragments=self._deliver(record.id, user_answer, is_correct, fragments, first),
		)

	async def _deliver(
		self,
		session_id: str,
		user_answer: float,
		is_correct: bool,
		fragments: AsyncIterator[str],
		first: Optional[str],
	) -> AsyncIterator[str]:
		accumulated = []
		try:
			if first is not None:
				accumulated.append(first)
				yield first
				async for fragment in fragments:
					accumulated.append(fragment)
					yield fragment
		except GatewayError as err:
			logger.warning("Feedback stream for session %s ended early: %s", session_id, err)
		except (asyncio.CancelledError, GeneratorExit):
			logger.info("Client left during feedback for session %s", session_id)
			raise
		finally:
			self._finalize(session_id, user_answer, is_correct, "".join(accumulated))
			close = getattr(fragments, "aclose", None)
			if close is not None:
				try:
					await close()
				except Exception:
					logger.debug("Closing upstream feedback stream failed", exc_info=True)

	async def evaluate_once(self, session_id: str, user_answer: float) -> Tuple[bool, str]:
		"""Non-streamed variant; the submission is saved before returning."""
		record, is_correct, request = self._prepare(session_id, user_answer, structured=True)
		try:
			result = await self.gateway.generate_once(request)
		except BaseException:
			self._finalize(record.id, user_answer, is_correct, "")
			raise
		feedback = str(result["feedback"])
		# Nothing has been sent yet, so a failed save is still reportable
		self.submissions.create(record.id, user_answer, is_correct, feedback)
		return is_correct, feedback
