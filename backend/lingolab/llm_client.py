from __future__ import annotations
import json
import logging
import re
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .settings import settings

logger = logging.getLogger("lingolab.llm")

ModelT = TypeVar("ModelT", bound=BaseModel)


class LLMError(RuntimeError):
	"""Raised for any failed call to the hosted model (network, HTTP or schema)."""


def extract_json_object(text: str) -> Dict[str, Any]:
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
	raise LLMError("Model did not return valid JSON.")


class AzureOpenAIClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		endpoint: Optional[str] = None,
		api_version: Optional[str] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key or settings.azure_openai_api_key
		if not self.api_key:
			raise LLMError("AZURE_OPENAI_API_KEY is not configured")
		endpoint = endpoint or settings.azure_openai_endpoint
		if not endpoint:
			raise LLMError("AZURE_OPENAI_ENDPOINT is not configured")
		self.endpoint = endpoint.rstrip("/")
		self.api_version = api_version or settings.azure_openai_api_version
		self.chat_deployment = settings.azure_openai_chat_deployment
		self.eval_deployment = settings.azure_openai_eval_deployment
		self.tts_deployment = settings.azure_openai_tts_deployment
		self.tts_voice = settings.azure_openai_tts_voice
		self._client = httpx.AsyncClient(
			timeout=settings.llm_timeout_seconds,
			headers={"api-key": self.api_key},
			transport=transport,
		)

	def _url(self, deployment: str, path: str) -> str:
		return f"{self.endpoint}/openai/deployments/{deployment}/{path}"

	async def _post(self, deployment: str, path: str, payload: Dict[str, Any]) -> httpx.Response:
		try:
			r = await self._client.post(self._url(deployment, path), params={"api-version": self.api_version}, json=payload)
			r.raise_for_status()
		except httpx.HTTPStatusError as http_err:
			raise LLMError(f"Azure OpenAI returned {http_err.response.status_code}: {http_err.response.text[:300]}") from http_err
		except httpx.RequestError as net_err:
			raise LLMError(f"Azure OpenAI request failed: {net_err}") from net_err
		return r

	async def generate_object(
		self,
		prompt: str,
		schema: Type[ModelT],
		*,
		system: Optional[str] = None,
		deployment: Optional[str] = None,
	) -> ModelT:
		"""Request a JSON reply matching ``schema`` and validate it.

		The pydantic model's JSON schema is passed as ``response_format`` so the
		model is constrained server-side; the reply is validated again here and
		any mismatch surfaces as :class:`LLMError`.
		"""
		messages: List[Dict[str, str]] = []
		if system:
			messages.append({"role": "system", "content": system})
		messages.append({"role": "user", "content": prompt})
		payload = {
			"messages": messages,
			"response_format": {
				"type": "json_schema",
				"json_schema": {"name": schema.__name__, "schema": schema.model_json_schema(), "strict": False},
			},
		}
		r = await self._post(deployment or self.eval_deployment, "chat/completions", payload)
		try:
			content = r.json()["choices"][0]["message"]["content"]
		except Exception as err:
			raise LLMError(f"Unexpected Azure OpenAI response: {r.text[:300]}") from err
		try:
			return schema.model_validate(extract_json_object(content))
		except ValidationError as err:
			raise LLMError(f"Model reply did not match {schema.__name__}: {err}") from err

	async def stream_chat(
		self,
		system: str,
		messages: List[Dict[str, str]],
		*,
		deployment: Optional[str] = None,
	) -> AsyncIterator[str]:
		payload = {
			"messages": [{"role": "system", "content": system}, *messages],
			"stream": True,
		}
		url = self._url(deployment or self.chat_deployment, "chat/completions")
		try:
			async with self._client.stream("POST", url, params={"api-version": self.api_version}, json=payload) as r:
				if r.status_code >= 400:
					body = await r.aread()
					raise LLMError(f"Azure OpenAI returned {r.status_code}: {body[:300]!r}")
				async for line in r.aiter_lines():
					if not line.startswith("data:"):
						continue
					data = line[len("data:"):].strip()
					if data == "[DONE]":
						break
					try:
						chunk = json.loads(data)
					except json.JSONDecodeError:
						continue
					for choice in chunk.get("choices") or []:
						delta = (choice.get("delta") or {}).get("content")
						if delta:
							yield delta
		except httpx.RequestError as net_err:
			raise LLMError(f"Azure OpenAI stream failed: {net_err}") from net_err

	async def synthesize_speech(self, text: str, *, instructions: Optional[str] = None) -> bytes:
		payload: Dict[str, Any] = {"model": self.tts_deployment, "input": text, "voice": self.tts_voice}
		if instructions:
			payload["instructions"] = instructions
		r = await self._post(self.tts_deployment, "audio/speech", payload)
		return r.content

	async def aclose(self) -> None:
		await self._client.aclose()


def get_llm_factory() -> Callable[[], AzureOpenAIClient]:
	# Routes build, use and close their own client; tests override this dependency
	return AzureOpenAIClient
