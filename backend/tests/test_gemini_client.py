import asyncio
import json

import httpx
import pytest

from problem_tutor.curriculum import DifficultyLevel, TOPIC_POOL
from problem_tutor.errors import ConfigurationError, GatewayError
from problem_tutor.gemini_client import GeminiClient
from problem_tutor.prompts import build_feedback_request, build_problem_request
from problem_tutor.settings import settings


PROBLEM_REQUEST = build_problem_request(DifficultyLevel.EASY, TOPIC_POOL[:1])
FEEDBACK_REQUEST = build_feedback_request("How many?", 57, 50, False)


def _candidate(text):
	return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def _run(handler, coro_fn):
	async def main():
		client = GeminiClient(api_key="k", transport=httpx.MockTransport(handler))
		try:
			return await coro_fn(client)
		finally:
			await client.aclose()
	return asyncio.run(main())


def _collect(request):
	async def go(client):
		return [fragment async for fragment in client.generate_stream(request)]
	return go


def test_missing_api_key(monkeypatch):
	monkeypatch.setattr(settings, "gemini_api_key", None)
	with pytest.raises(ConfigurationError):
		GeminiClient()


def test_generate_once_sends_structured_request():
	seen = {}

	def handler(request):
		seen["url"] = str(request.url)
		seen["body"] = json.loads(request.content)
		return httpx.Response(200, json=_candidate('{"problem_text": "2 + 3?", "correct_answer": 5}'))

	result = _run(handler, lambda c: c.generate_once(PROBLEM_REQUEST))
	assert result == {"problem_text": "2 + 3?", "correct_answer": 5}
	assert ":generateContent" in seen["url"]
	assert "key=k" in seen["url"]
	config = seen["body"]["generationConfig"]
	assert config["responseMimeType"] == "application/json"
	assert config["responseSchema"]["required"] == ["problem_text", "correct_answer"]
	assert "curriculum designer" in seen["body"]["systemInstruction"]["parts"][0]["text"]


def test_generate_once_tolerates_code_fences():
	text = 'Here you go:\n```json\n{"problem_text": "p", "correct_answer": 1.5}\n```'

	def handler(request):
		return httpx.Response(200, json=_candidate(text))

	assert _run(handler, lambda c: c.generate_once(PROBLEM_REQUEST))["correct_answer"] == 1.5


@pytest.mark.parametrize("text", [
	"no json here",
	'{"problem_text": "p"}',
	'{"problem_text": "p", "correct_answer": "12 cm"}',
	'{"problem_text": "p", "correct_answer": true}',
	'{"problem_text": "p", "correct_answer": 1e999}',
	'{"problem_text": "p", "correct_answer": NaN}',
])
def test_generate_once_rejects_bad_shapes(text):
	def handler(request):
		return httpx.Response(200, json=_candidate(text))

	with pytest.raises(GatewayError):
		_run(handler, lambda c: c.generate_once(PROBLEM_REQUEST))


def test_generate_once_http_error():
	def handler(request):
		return httpx.Response(503, json={"error": "overloaded"})

	with pytest.raises(GatewayError):
		_run(handler, lambda c: c.generate_once(PROBLEM_REQUEST))


def test_generate_once_falls_back_to_openrouter(monkeypatch):
	monkeypatch.setattr(settings, "openrouter_api_key", "or-key")

	def handler(request):
		if request.url.host == "openrouter.ai":
			assert request.headers["authorization"] == "Bearer or-key"
			body = json.loads(request.content)
			assert body["response_format"] == {"type": "json_object"}
			content = '{"problem_text": "fallback", "correct_answer": 9}'
			return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})
		return httpx.Response(500)

	result = _run(handler, lambda c: c.generate_once(PROBLEM_REQUEST))
	assert result == {"problem_text": "fallback", "correct_answer": 9}


def test_generate_stream_yields_fragments_in_order():
	chunks = [_candidate("Nice "), _candidate(""), _candidate("try!")]
	body = "".join(f"data: {json.dumps(c)}\r\n\r\n" for c in chunks).encode()
	seen = {}

	def handler(request):
		seen["url"] = str(request.url)
		return httpx.Response(200, content=body, headers={"Content-Type": "text/event-stream"})

	assert _run(handler, _collect(FEEDBACK_REQUEST)) == ["Nice ", "try!"]
	assert ":streamGenerateContent" in seen["url"]
	assert "alt=sse" in seen["url"]


def test_generate_stream_http_error():
	def handler(request):
		return httpx.Response(429, text="quota")

	with pytest.raises(GatewayError):
		_run(handler, _collect(FEEDBACK_REQUEST))


def test_generate_stream_bad_chunk():
	body = b'data: {"candidates": []}\n\n'

	def handler(request):
		return httpx.Response(200, content=body)

	with pytest.raises(GatewayError):
		_run(handler, _collect(FEEDBACK_REQUEST))


def test_vertex_provider_uses_header_auth(monkeypatch):
	monkeypatch.setattr(settings, "gemini_provider", "vertex")
	monkeypatch.setattr(settings, "vertex_project", "proj")
	seen = {}

	def handler(request):
		seen["url"] = str(request.url)
		seen["key"] = request.headers.get("x-goog-api-key")
		return httpx.Response(200, json=_candidate('{"problem_text": "p", "correct_answer": 2}'))

	_run(handler, lambda c: c.generate_once(PROBLEM_REQUEST))
	assert "aiplatform.googleapis.com" in seen["url"]
	assert "/projects/proj/" in seen["url"]
	assert seen["key"] == "k"
