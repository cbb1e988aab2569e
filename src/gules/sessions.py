"""
Sessions REST API: sessions and their activity pages.
"""

from typing import Any, Optional

from gules.models.cache import ActivityPage
from gules.transport.http import HttpClient

DEFAULT_PAGE_SIZE = 30


class SessionsAPI:
    def __init__(self, http: HttpClient):
        self._http = http

    async def list(self, page_size: int = DEFAULT_PAGE_SIZE, page_token: Optional[str] = None) -> dict[str, Any]:
        """GET /sessions"""
        params: dict[str, Any] = {"pageSize": page_size}
        if page_token:
            params["pageToken"] = page_token
        return await self._http.get("/sessions", params=params)

    async def get(self, session_id: str) -> dict[str, Any]:
        """GET /sessions/{id}"""
        return await self._http.get(f"/sessions/{session_id}")

    async def list_activities(
        self, session_id: str, page_size: int = DEFAULT_PAGE_SIZE, page_token: Optional[str] = None,
    ) -> dict[str, Any]:
        """GET /sessions/{id}/activities: raw response with `activities` and `nextPageToken`."""
        params: dict[str, Any] = {"pageSize": page_size}
        if page_token:
            params["pageToken"] = page_token
        return await self._http.get(f"/sessions/{session_id}/activities", params=params)

    async def get_activity(self, session_id: str, activity_id: str) -> dict[str, Any]:
        """GET /sessions/{id}/activities/{activity_id}"""
        return await self._http.get(f"/sessions/{session_id}/activities/{activity_id}")

    async def fetch_activities_page(
        self, session_id: str, page_token: Optional[str], page_size: int,
    ) -> ActivityPage:
        """One activity page in the shape the sync engine consumes. Payloads are left undecoded."""
        body = await self.list_activities(session_id, page_size=page_size, page_token=page_token)
        activities = body.get("activities") if isinstance(body, dict) else None
        token = body.get("nextPageToken") if isinstance(body, dict) else None
        return ActivityPage(
            activities if isinstance(activities, list) else [],
            token if isinstance(token, str) and token else None,
        )
