from __future__ import annotations
import uuid
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import sessionmaker

from ..curriculum import CONCEPT_COUNT_BY_DIFFICULTY, TOPIC_POOL, DifficultyLevel
from ..db import get_session_factory
from ..gemini_client import get_gateway
from ..services import AnswerEvaluationService, ProblemGenerationService
from ..store import ProblemSessionStore, SubmissionStore

router = APIRouter(tags=["problems"])


class ProblemRequest(BaseModel):
	difficulty_level: DifficultyLevel = DifficultyLevel.MEDIUM


class ProblemResponse(BaseModel):
	problem_text: str
	correct_answer: float
	session_id: uuid.UUID


class SubmissionRequest(BaseModel):
	session_id: uuid.UUID
	# strict: rejects booleans and numeric strings; NaN and infinities are not answers
	answer: float = Field(strict=True, allow_inf_nan=False)


class FeedbackResponse(BaseModel):
	is_correct: bool
	feedback: str


@router.post("/problems", response_model=ProblemResponse)
async def create_problem(
	req: ProblemRequest,
	gateway: Any = Depends(get_gateway),
	session_factory: sessionmaker = Depends(get_session_factory),
):
	service = ProblemGenerationService(gateway, ProblemSessionStore(session_factory))
	problem = await service.generate(req.difficulty_level)
	return ProblemResponse(
		problem_text=problem.problem_text,
		correct_answer=problem.correct_answer,
		session_id=problem.session_id,
	)


@router.post("/problems/{problem_id}/submissions")
async def submit_answer(
	problem_id: uuid.UUID,
	req: SubmissionRequest,
	stream: bool = Query(default=True),
	gateway: Any = Depends(get_gateway),
	session_factory: sessionmaker = Depends(get_session_factory),
):
	if req.session_id != problem_id:
		raise HTTPException(status_code=400, detail="session_id does not match the problem in the path")
	service = AnswerEvaluationService(
		gateway,
		ProblemSessionStore(session_factory),
		SubmissionStore(session_factory),
	)
	if not stream:
		is_correct, feedback = await service.evaluate_once(str(problem_id), req.answer)
		return FeedbackResponse(is_correct=is_correct, feedback=feedback)
	feedback = await service.evaluate(str(problem_id), req.answer)
	return StreamingResponse(
		feedback.fragments,
		media_type="text/plain",
		headers={
			"Cache-Control": "no-cache",
			"X-Answer-Correct": "true" if feedback.is_correct else "false",
		},
	)


@router.get("/curriculum")
def get_curriculum() -> Dict[str, Any]:
	topics: List[Dict[str, Any]] = [
		{"primary_concept": g.primary_concept, "details": list(g.details)} for g in TOPIC_POOL
	]
	return {
		"topics": topics,
		"concept_count": {level.value: n for level, n in CONCEPT_COUNT_BY_DIFFICULTY.items()},
	}
