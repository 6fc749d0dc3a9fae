from __future__ import annotations
import logging
import math
import httpx
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple
from .errors import CompletionError, ErrorKind
from .settings import settings

logger = logging.getLogger(__name__)

# (model, label, input_tokens, output_tokens)
UsageCallback = Callable[[str, str, int, int], Awaitable[Any]]

_RATE_LIMIT_MARKERS = ("quota", "rate limit", "resource_exhausted", "too many requests")


def estimate_tokens(text: str) -> int:
	# ~4 characters per token for English text
	return int(math.ceil(len(text or "") / 4))


def classify_error(err: Exception) -> CompletionError:
	if isinstance(err, CompletionError):
		return err
	if isinstance(err, httpx.HTTPStatusError):
		status = err.response.status_code
		try:
			body = err.response.text
		except Exception:
			body = ""
		lowered = body.lower()
		if status == 429 or any(m in lowered for m in _RATE_LIMIT_MARKERS):
			kind = ErrorKind.RATE_LIMITED
		elif status == 503:
			kind = ErrorKind.SERVICE_UNAVAILABLE
		elif status in (500, 502, 504):
			kind = ErrorKind.SERVER_ERROR
		else:
			kind = ErrorKind.FATAL
		return CompletionError(kind, f"HTTP {status}: {body[:300]}", status_code=status)
	if isinstance(err, httpx.TimeoutException):
		return CompletionError(ErrorKind.TIMEOUT, f"request timed out: {err}")
	if isinstance(err, httpx.RequestError):
		# connect errors, resets, DNS failures, protocol errors
		return CompletionError(ErrorKind.NETWORK, f"network error: {err!r}")
	return CompletionError(ErrorKind.FATAL, str(err))


class GeminiClient:
	"""Completion gateway: Gemini REST API with a local Ollama fallback.

	``generate`` returns the generated text or raises a classified
	``CompletionError``; callers decide whether to retry.
	"""

	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		provider: Optional[str] = None,
		timeout: Optional[float] = None,
		fallback_enabled: Optional[bool] = None,
		on_usage: Optional[UsageCallback] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key if api_key is not None else settings.gemini_api_key
		self.provider = provider or settings.gemini_provider
		self._fallback_enabled = settings.local_fallback_enabled if fallback_enabled is None else fallback_enabled
		if not self.api_key and not self._fallback_enabled:
			raise ValueError("GEMINI_API_KEY is not configured and local fallback is disabled")
		self._auth_in_query = self.provider != "vertex"
		self._on_usage = on_usage
		self._ollama_base_url = settings.ollama_base_url.rstrip("/")
		self._ollama_model = settings.ollama_model
		timeout = timeout or settings.request_timeout_seconds
		self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
		self._fallback_client: Optional[httpx.AsyncClient] = None
		if self._fallback_enabled:
			self._fallback_client = httpx.AsyncClient(timeout=timeout, transport=transport)

	@property
	def fallback_enabled(self) -> bool:
		return self._fallback_enabled

	def _endpoint(self, model: str) -> str:
		if self.provider == "vertex":
			region = settings.vertex_region
			project = settings.vertex_project or "placeholder-project"
			# Vertex AI Generative REST endpoint (API key via header)
			return (
				f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}/publishers/google/models/{model}:generateContent"
			)
		# Google AI Studio (Generative Language API)
		return f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

	async def generate(
		self,
		model: str,
		prompt: str,
		*,
		temperature: Optional[float] = None,
		max_tokens: Optional[int] = None,
		label: str = "completion",
	) -> str:
		try:
			text, usage = await self._generate_gemini(model, prompt, temperature=temperature, max_tokens=max_tokens)
			used_model = model
		except CompletionError as primary_error:
			if not self._fallback_enabled:
				raise
			logger.warning("Gemini call for %s failed (%s); trying local model %s", label, primary_error, self._ollama_model)
			text, usage = await self._fallback_generate(prompt, primary_error, temperature=temperature, max_tokens=max_tokens)
			used_model = self._ollama_model
		await self._report_usage(used_model, label, prompt, text, usage)
		return text

	async def _generate_gemini(
		self,
		model: str,
		prompt: str,
		*,
		temperature: Optional[float],
		max_tokens: Optional[int],
	) -> Tuple[str, Dict[str, int]]:
		if not self.api_key:
			raise CompletionError(ErrorKind.FATAL, "GEMINI_API_KEY is not configured")
		payload: Dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
		generation_config: Dict[str, Any] = {}
		if temperature is not None:
			generation_config["temperature"] = temperature
		if max_tokens is not None:
			generation_config["maxOutputTokens"] = max_tokens
		if generation_config:
			payload["generationConfig"] = generation_config
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		try:
			r = await self._client.post(self._endpoint(model), params=params, headers=headers, json=payload)
			r.raise_for_status()
		except httpx.HTTPError as err:
			raise classify_error(err) from err
		try:
			data = r.json()
			parts = data["candidates"][0]["content"]["parts"]
			text = "".join(p.get("text", "") for p in parts)
		except Exception as err:
			raise CompletionError(ErrorKind.MALFORMED, f"Unexpected Gemini response: {r.text[:300]}") from err
		if not text.strip():
			raise CompletionError(ErrorKind.MALFORMED, "Gemini returned an empty completion")
		meta = data.get("usageMetadata") or {}
		usage = {
			"input_tokens": int(meta.get("promptTokenCount") or 0),
			"output_tokens": int(meta.get("candidatesTokenCount") or 0),
		}
		return text, usage

	async def _fallback_generate(
		self,
		prompt: str,
		primary_error: CompletionError,
		*,
		temperature: Optional[float],
		max_tokens: Optional[int],
	) -> Tuple[str, Dict[str, int]]:
		if self._fallback_client is None:
			raise primary_error
		options: Dict[str, Any] = {}
		if temperature is not None:
			options["temperature"] = temperature
		if max_tokens is not None:
			options["num_predict"] = max_tokens
		payload: Dict[str, Any] = {"model": self._ollama_model, "prompt": prompt, "stream": False}
		if options:
			payload["options"] = options
		try:
			r = await self._fallback_client.post(f"{self._ollama_base_url}/api/generate", json=payload)
			r.raise_for_status()
			data = r.json()
			text = data["response"]
		except Exception as fallback_err:
			logger.error("Local model fallback also failed: %r", fallback_err)
			# keep the primary classification so the retry policy sees the real cause
			raise primary_error from fallback_err
		usage = {
			"input_tokens": int(data.get("prompt_eval_count") or 0),
			"output_tokens": int(data.get("eval_count") or 0),
		}
		return text, usage

	async def _report_usage(self, model: str, label: str, prompt: str, text: str, usage: Dict[str, int]) -> None:
		if self._on_usage is None:
			return
		input_tokens = usage.get("input_tokens") or estimate_tokens(prompt)
		output_tokens = usage.get("output_tokens") or estimate_tokens(text)
		try:
			await self._on_usage(model, label, input_tokens, output_tokens)
		except Exception:
			logger.exception("Usage callback failed for %s", label)

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback_client is not None:
			await self._fallback_client.aclose()
