from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .curriculum import DifficultyLevel, TopicGroup
from .settings import settings


@dataclass(frozen=True)
class GenerationRequest:
	system_instruction: str
	prompt: str
	# Gemini responseSchema; None means free text
	response_schema: Optional[Dict[str, Any]] = None
	required_fields: Tuple[str, ...] = field(default_factory=tuple)
	temperature: Optional[float] = None


PROBLEM_SCHEMA: Dict[str, Any] = {
	"type": "OBJECT",
	"properties": {
		"problem_text": {"type": "STRING"},
		"correct_answer": {"type": "NUMBER"},
	},
	"required": ["problem_text", "correct_answer"],
}

FEEDBACK_SCHEMA: Dict[str, Any] = {
	"type": "OBJECT",
	"properties": {"feedback": {"type": "STRING"}},
	"required": ["feedback"],
}


def _problem_system_instruction(grade: str) -> str:
	return (
		f"You are an expert curriculum designer for {grade} students. Your sole task is to generate high-quality math word problems based on the rules below.\n\n"
		"**PRIMARY RULE: KNOWLEDGE CONFINEMENT**\n"
		"You must only generate problems that strictly fall under the curriculum topics supplied in the request.\n\n"
		"**DIFFICULTY TIERS:**\n"
		"- EASY: one concept, solvable in one or two steps, small whole numbers.\n"
		"- MEDIUM: two to three steps with moderately sized numbers; simple fractions or decimals are allowed. "
		"You MUST combine ALL of the listed main concepts into one cohesive problem.\n"
		"- HARD: four or more steps with larger numbers, mixed numbers, or multi-digit decimals. "
		"You MUST combine ALL of the listed main concepts into one cohesive problem.\n"
		"If an answer is a repeating decimal, state in the problem how many decimal places to round to.\n\n"
		"**STRICT OUTPUT FORMATTING RULE:**\n"
		"Respond with a JSON object with exactly two fields: problem_text (string) and correct_answer (number). "
		"correct_answer must be a plain, unit-less numerical value. Do not include any text, unit symbols "
		"(like 'cm', 'kg', '$', or 'litres'), or explanatory words in the answer, only the number itself."
	)


def _feedback_system_instruction(grade: str) -> str:
	return (
		f"You are an encouraging, world-class math tutor for {grade} students. Your sole task is to provide highly focused, supportive, and instructional feedback.\n\n"
		"Follow these strict rules for your response:\n"
		"1. Tone: always maintain a positive, non-judgmental, and encouraging tone.\n"
		"2. If CORRECT: offer enthusiastic praise, reinforce the underlying mathematical concept, "
		"and walk through the full worked solution step by step.\n"
		"3. If INCORRECT (most important):\n"
		"   - Diagnose the error: identify the most likely specific mistake (e.g. misreading the question, a calculation slip, a wrong operation).\n"
		"   - Guide the next step: give hints that lead the student towards the correct method.\n"
		"   - NEVER state the final numeric answer. The student must work it out on their own.\n"
		"4. Formatting: use plain text or simple markdown. Do not use LaTeX or other heavy math markup."
	)


def _merge_details(topics: Sequence[TopicGroup]) -> List[str]:
	seen = set()
	merged: List[str] = []
	for group in topics:
		for detail in group.details:
			if detail not in seen:
				seen.add(detail)
				merged.append(detail)
	return merged


def build_problem_request(level: DifficultyLevel, topics: Sequence[TopicGroup]) -> GenerationRequest:
	concepts = ", ".join(group.primary_concept for group in topics)
	details = "\n".join(f"- {d}" for d in _merge_details(topics))
	prompt = (
		f"Generate one {level.value} math word problem.\n\n"
		f"**MAIN CONCEPTS (use all of them):** {concepts}\n\n"
		"--- SYLLABUS REFERENCE ---\n"
		f"{details}\n"
		"---------------------------"
	)
	return GenerationRequest(
		system_instruction=_problem_system_instruction(settings.grade_label),
		prompt=prompt,
		response_schema=PROBLEM_SCHEMA,
		required_fields=("problem_text", "correct_answer"),
		temperature=settings.problem_temperature,
	)


def build_feedback_request(
	problem_text: str,
	correct_answer: float,
	user_answer: float,
	is_correct: bool,
	*,
	structured: bool = False,
) -> GenerationRequest:
	"""Feedback request; ``structured`` asks for a ``{feedback}`` JSON object instead of free text."""
	prompt = (
		"Generate personalized tutoring feedback based on the session data below:\n\n"
		f"**Problem:** {problem_text}\n"
		f"**Correct Answer:** {format_number(correct_answer)}\n"
		f"**User's Attempt:** {format_number(user_answer)}\n"
		f"**Outcome Status:** {'CORRECT' if is_correct else 'INCORRECT'}"
	)
	if structured:
		return GenerationRequest(
			system_instruction=_feedback_system_instruction(settings.grade_label),
			prompt=prompt,
			response_schema=FEEDBACK_SCHEMA,
			required_fields=("feedback",),
		)
	return GenerationRequest(system_instruction=_feedback_system_instruction(settings.grade_label), prompt=prompt)


def format_number(value: float) -> str:
	# 57.0 -> "57", 0.1 -> "0.1"
	if float(value).is_integer():
		return str(int(value))
	return repr(float(value))
