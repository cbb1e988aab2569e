"""Shared fixtures: isolated cache roots, activity payload builders, a fake paginated remote."""

import copy
from typing import Any, Optional

import pytest

from gules.config import CacheConfig
from gules.models.cache import ActivityPage
from gules.store import CacheStore

DEFAULT_BODIES: dict[str, Any] = {
    "agentMessaged": {"agentMessage": "Working on it"},
    "userMessaged": {"userMessage": "Please fix the tests"},
    "planGenerated": {"plan": {"id": "p1", "steps": [{"id": "s1", "title": "Read code", "index": 0}]}},
    "planApproved": {"planId": "p1"},
    "progressUpdated": {"title": "Running tests", "description": "pytest -q"},
    "sessionCompleted": {},
    "sessionFailed": {"reason": "build broke"},
}


def ts(second: int) -> str:
    return f"2025-10-26T00:00:{second:02d}Z"


def make_activity(
    aid: str,
    second: int = 0,
    kind: str = "agentMessaged",
    body: Optional[dict[str, Any]] = None,
    artifacts: Optional[list[dict[str, Any]]] = None,
    originator: str = "agent",
    session_id: str = "s1",
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": f"sessions/{session_id}/activities/{aid}",
        "id": aid,
        "createTime": ts(second),
        "originator": originator,
    }
    if artifacts is not None:
        payload["artifacts"] = artifacts
    payload[kind] = copy.deepcopy(body if body is not None else DEFAULT_BODIES[kind])
    return payload


def bash_artifact(command: str = "pytest -q", output: str = "3 passed", exit_code: Optional[int] = 0) -> dict:
    bash: dict[str, Any] = {"command": command, "output": output}
    if exit_code is not None:
        bash["exitCode"] = exit_code
    return {"bashOutput": bash}


class FakeRemote:
    """Paginated remote: pages maps page token -> (activities, next token)."""

    def __init__(self, pages: dict[Optional[str], tuple[list[dict[str, Any]], Optional[str]]],
                 fail_on: tuple = ()):
        self.pages = pages
        self.fail_on = set(fail_on)
        self.calls: list[tuple[str, Optional[str], int]] = []

    async def __call__(self, session_id: str, page_token: Optional[str], page_size: int) -> ActivityPage:
        self.calls.append((session_id, page_token, page_size))
        if page_token in self.fail_on:
            raise ConnectionError(f"connection reset fetching page {page_token}")
        activities, next_token = self.pages[page_token]
        return ActivityPage(copy.deepcopy(activities), next_token)

    @property
    def tokens(self) -> list[Optional[str]]:
        return [token for _, token, _ in self.calls]


@pytest.fixture
def activity():
    return make_activity


@pytest.fixture
def bash():
    return bash_artifact


@pytest.fixture
def remote():
    return FakeRemote


@pytest.fixture
def cache_config(tmp_path):
    return CacheConfig(root=tmp_path / "cache", max_sessions=50, page_size=50)


@pytest.fixture
def store(cache_config):
    return CacheStore(cache_config)
