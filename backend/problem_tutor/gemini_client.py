from __future__ import annotations
import json
import logging
import math
import re
import httpx
from typing import Any, AsyncIterator, Dict, Optional
from .errors import ConfigurationError, GatewayError
from .prompts import GenerationRequest
from .settings import settings

logger = logging.getLogger(__name__)


def _extract_json_object(text: str) -> Dict[str, Any]:
	try:
		return json.loads(text)
	except Exception:
		pass
	code_block = re.search(r"```json\s*([\s\S]*?)\s*```", text)
	if code_block:
		try:
			return json.loads(code_block.group(1))
		except Exception:
			pass
	first = text.find("{")
	last = text.rfind("}")
	if first != -1 and last != -1 and last > first:
		try:
			return json.loads(text[first : last + 1])
		except Exception:
			pass
	raise GatewayError("Model did not return valid JSON.")


def _check_shape(data: Any, request: GenerationRequest) -> Dict[str, Any]:
	if not isinstance(data, dict):
		raise GatewayError("Model returned JSON that is not an object.")
	missing = [f for f in request.required_fields if f not in data]
	if missing:
		raise GatewayError(f"Model output is missing fields: {', '.join(missing)}")
	props = (request.response_schema or {}).get("properties", {})
	for name in request.required_fields:
		kind = props.get(name, {}).get("type")
		value = data[name]
		if kind == "NUMBER" and (isinstance(value, bool) or not isinstance(value, (int, float))):
			raise GatewayError(f"Model output field {name} is not a number: {value!r}")
		if kind == "NUMBER" and not math.isfinite(value):
			raise GatewayError(f"Model output field {name} is not a finite number: {value!r}")
		if kind == "STRING" and not isinstance(value, str):
			raise GatewayError(f"Model output field {name} is not a string")
	return {name: data[name] for name in request.required_fields}


def _candidate_text(data: Dict[str, Any]) -> str:
	parts = data["candidates"][0]["content"]["parts"]
	return "".join(p.get("text", "") for p in parts)


def _model_url(model: str) -> str:
	if settings.gemini_provider == "vertex":
		region = settings.vertex_region
		project = settings.vertex_project or "placeholder-project"
		return f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}/publishers/google/models/{model}"
	return f"https://generativelanguage.googleapis.com/v1beta/models/{model}"


class GeminiClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		model: Optional[str] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ConfigurationError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		self._model_url = _model_url(self.model)
		# Vertex takes the key in a header, AI Studio in the query string
		self._auth_in_query = settings.gemini_provider != "vertex"
		self._timeout = settings.gemini_timeout_seconds
		self._transport = transport
		self._client = httpx.AsyncClient(timeout=self._timeout, transport=transport)
		self._fallback_client: Optional[httpx.AsyncClient] = None
		if settings.openrouter_api_key:
			self._fallback_client = httpx.AsyncClient(timeout=self._timeout, transport=transport)

	def _auth(self) -> tuple[Dict[str, Any], Dict[str, str]]:
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		return params, headers

	def _payload(self, request: GenerationRequest) -> Dict[str, Any]:
		payload: Dict[str, Any] = {
			"systemInstruction": {"parts": [{"text": request.system_instruction}]},
			"contents": [{"role": "user", "parts": [{"text": request.prompt}]}],
		}
		config: Dict[str, Any] = {}
		if request.temperature is not None:
			config["temperature"] = request.temperature
		if request.response_schema is not None:
			config["responseMimeType"] = "application/json"
			config["responseSchema"] = request.response_schema
		if config:
			payload["generationConfig"] = config
		return payload

	async def generate_once(self, request: GenerationRequest) -> Dict[str, Any]:
		"""Single-shot call returning the request's required fields as a dict."""
		params, headers = self._auth()
		last_error: Optional[Exception] = None
		try:
			r = await self._client.post(
				f"{self._model_url}:generateContent",
				params=params,
				headers=headers,
				json=self._payload(request),
			)
			r.raise_for_status()
			return _check_shape(_extract_json_object(_candidate_text(r.json())), request)
		except GatewayError as err:
			last_error = err
		except httpx.HTTPError as err:
			last_error = err
		except (KeyError, IndexError, TypeError, ValueError) as err:
			last_error = GatewayError(f"Unexpected Gemini response: {err}")
		if self._fallback_client is None:
			raise GatewayError(f"Gemini call failed: {last_error}") from last_error
		logger.warning("Gemini call failed (%s); falling back to OpenRouter", last_error)
		return await self._fallback_generate(request, last_error)

	async def generate_stream(self, request: GenerationRequest) -> AsyncIterator[str]:
		"""Yield text fragments in the order the model emits them."""
		params, headers = self._auth()
		params["alt"] = "sse"
		# Own connection: a streamed response can outlive the request-scoped client
		try:
			async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client, client.stream(
				"POST",
				f"{self._model_url}:streamGenerateContent",
				params=params,
				headers=headers,
				json=self._payload(request),
			) as r:
				if r.status_code >= 400:
					await r.aread()
					raise GatewayError(f"Gemini stream failed with status {r.status_code}: {r.text}")
				async for line in r.aiter_lines():
					if not line.startswith("data:"):
						continue
					body = line[len("data:"):].strip()
					if not body:
						continue
					try:
						text = _candidate_text(json.loads(body))
					except (KeyError, IndexError, TypeError, ValueError) as err:
						raise GatewayError(f"Unexpected Gemini stream chunk: {body[:200]}") from err
					if text:
						yield text
		except httpx.HTTPError as err:
			raise GatewayError(f"Gemini stream failed: {err}") from err

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback_client is not None:
			await self._fallback_client.aclose()

	async def _fallback_generate(self, request: GenerationRequest, primary_error: Optional[Exception]) -> Dict[str, Any]:
		if self._fallback_client is None:
			raise GatewayError("Fallback requested but OpenRouter is not configured") from primary_error
		headers = {
			"Authorization": f"Bearer {settings.openrouter_api_key}",
			"Content-Type": "application/json",
			"HTTP-Referer": settings.openrouter_referer,
			"X-Title": settings.openrouter_title,
		}
		headers = {k: v for k, v in headers.items() if v}
		payload: Dict[str, Any] = {
			"model": settings.openrouter_model,
			"messages": [
				{"role": "system", "content": request.system_instruction},
				{"role": "user", "content": request.prompt},
			],
		}
		if request.response_schema is not None:
			payload["response_format"] = {"type": "json_object"}
		try:
			r = await self._fallback_client.post(
				settings.openrouter_base_url,
				headers=headers,
				json=payload,
			)
			r.raise_for_status()
			content = r.json()["choices"][0]["message"]["content"]
			return _check_shape(_extract_json_object(content), request)
		except Exception as fallback_err:
			raise GatewayError(
				f"Gemini primary call failed ({primary_error}); fallback via OpenRouter also failed"
			) from fallback_err


async def get_gateway():
	client = GeminiClient()
	try:
		yield client
	finally:
		await client.aclose()
