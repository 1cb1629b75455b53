from __future__ import annotations
import base64
import json
import logging
from typing import Any, Callable, Dict, Optional

import httpx

from .settings import settings

logger = logging.getLogger("lingolab.storage")


class StorageUploadError(RuntimeError):
	"""The R2 worker rejected or never received an upload."""


def audio_data_url(audio: bytes, mime_type: str = "audio/mp3") -> str:
	return f"data:{mime_type};base64,{base64.b64encode(audio).decode('ascii')}"


class AudioStorage:
	"""Uploads generated audio to the R2 worker and returns its public URL."""

	def __init__(
		self,
		worker_url: Optional[str] = None,
		*,
		api_token: Optional[str] = None,
		public_url: Optional[str] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.worker_url = (worker_url or settings.r2_worker_url or "").rstrip("/")
		self.api_token = api_token or settings.r2_api_token
		self.public_url = (public_url or settings.r2_public_url or "").rstrip("/")
		self._client = httpx.AsyncClient(timeout=30, transport=transport)

	async def upload_audio(self, audio: bytes, *, file_name: str, audio_id: str, metadata: Dict[str, Any]) -> str:
		if not self.worker_url:
			raise StorageUploadError("R2_WORKER_URL is not configured")
		headers = {"Authorization": f"Bearer {self.api_token}"} if self.api_token else {}
		files = {"file": (file_name, audio, "audio/mp3")}
		data = {"audioId": audio_id, "metadata": json.dumps(metadata)}
		try:
			r = await self._client.post(f"{self.worker_url}/upload", headers=headers, files=files, data=data)
			r.raise_for_status()
			result = r.json()
		except httpx.HTTPStatusError as http_err:
			raise StorageUploadError(
				f"R2 worker upload failed: {http_err.response.status_code} {http_err.response.text[:200]}"
			) from http_err
		except (httpx.RequestError, ValueError) as err:
			raise StorageUploadError(f"R2 worker upload failed: {err}") from err
		return result.get("publicUrl") or result.get("url") or f"{self.public_url}/{result.get('key') or file_name}"

	async def aclose(self) -> None:
		await self._client.aclose()


def get_storage_factory() -> Callable[[], AudioStorage]:
	return AudioStorage
