"""
REST HTTP client for the Jules API (v1alpha).
"""

from typing import Any, Optional

import httpx

from gules.errors import ApiError, AuthError

DEFAULT_BASE_URL = "https://jules.googleapis.com/v1alpha"
USER_AGENT = "gules/0.1.0"


class HttpClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def set_api_key(self, api_key: str) -> None:
        self._api_key = api_key

    def _auth_headers(self) -> dict[str, str]:
        if not self._api_key:
            raise AuthError("API key not set. Use --api-key, JULES_API_KEY, or `gules config set-key`.")
        return {"X-Goog-Api-Key": self._api_key}

    @staticmethod
    def _check(resp: httpx.Response) -> Any:
        """Raise ApiError for non-2xx responses, parsing {"error": {code, message, status}} when present."""
        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and isinstance(body.get("error"), dict):
                err = body["error"]
                raise ApiError(
                    f"API error {err.get('code', resp.status_code)}: {err.get('message', '')} ({err.get('status', '')})",
                    status_code=resp.status_code,
                    details=err,
                )
            text = resp.text[:200]
            raise ApiError(f"HTTP {resp.status_code}: {text}" if text else f"HTTP {resp.status_code}",
                           status_code=resp.status_code)
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise ApiError(f"Failed to parse response as JSON: {e}", status_code=resp.status_code) from e

    async def get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        resp = await self._client.get(path, params=params, headers=self._auth_headers())
        return self._check(resp)

    async def post(self, path: str, body: Optional[dict[str, Any]] = None) -> Any:
        resp = await self._client.post(path, json=body, headers=self._auth_headers())
        return self._check(resp)

    async def close(self) -> None:
        await self._client.aclose()
