from __future__ import annotations
from typing import Any, Callable, Dict, Optional

import httpx

from .settings import settings


class AuthProviderError(RuntimeError):
	"""A call to the auth provider's backend API failed."""


class ClerkClient:
	"""Minimal client for the Clerk backend API (user lookup and metadata)."""

	def __init__(
		self,
		secret_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.secret_key = secret_key or settings.clerk_secret_key
		if not self.secret_key:
			raise AuthProviderError("CLERK_SECRET_KEY is not configured")
		self.base_url = (base_url or settings.clerk_api_url).rstrip("/")
		self._client = httpx.AsyncClient(
			timeout=15,
			headers={"Authorization": f"Bearer {self.secret_key}"},
			transport=transport,
		)

	async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
		try:
			r = await self._client.request(method, f"{self.base_url}{path}", **kwargs)
			r.raise_for_status()
			return r.json()
		except httpx.HTTPStatusError as http_err:
			raise AuthProviderError(
				f"Clerk {method} {path} returned {http_err.response.status_code}: {http_err.response.text[:200]}"
			) from http_err
		except (httpx.RequestError, ValueError) as err:
			raise AuthProviderError(f"Clerk {method} {path} failed: {err}") from err

	async def get_user(self, user_id: str) -> Dict[str, Any]:
		return await self._request("GET", f"/users/{user_id}")

	async def set_public_metadata(self, user_id: str, public_metadata: Dict[str, Any]) -> Dict[str, Any]:
		# Replaces the whole public_metadata object, so repeating the call is harmless
		return await self._request("PATCH", f"/users/{user_id}", json={"public_metadata": public_metadata})

	async def aclose(self) -> None:
		await self._client.aclose()


def get_auth_provider_factory() -> Callable[[], ClerkClient]:
	return ClerkClient
