"""HTTP client for the community board API.

Reads go through a small query cache keyed by path and parameters. Every
mutation declares which query keys it invalidates, so the next read of those
queries goes back to the server instead of being patched locally.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, TypeVar

import httpx
from pydantic import TypeAdapter
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import settings
from .models import Neighborhood, SubmissionCategory, SubmissionStatus
from .schemas import (
    DashboardStats,
    HealthResponse,
    MatchConfirmationOut,
    MatchSuggestionOut,
    SubmissionCreate,
    SubmissionOut,
    SubmissionUpdate,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

QueryKey = tuple[str, tuple[tuple[str, str], ...]]

SUBMISSIONS = "submissions"
STATS = "stats"
MATCH_SUGGESTIONS = "match-suggestions"

# Query families touched by each mutation
INVALIDATES = {
    "create_submission": (SUBMISSIONS, STATS, MATCH_SUGGESTIONS),
    "update_submission": (SUBMISSIONS, STATS, MATCH_SUGGESTIONS),
    "confirm_match": (SUBMISSIONS, STATS, MATCH_SUGGESTIONS),
}


class APIError(Exception):
    """Raised for non-success responses and exhausted transport retries."""

    def __init__(self, message: str, status_code: int | None = None, error: str | None = None):
        self.message = message
        self.status_code = status_code
        self.error = error
        super().__init__(self.message)


class QueryCache:
    """Read-through cache keyed by query identity.

    Keys are ``(family, params)``; invalidation drops whole families.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._entries: dict[QueryKey, Any] = {}

    @staticmethod
    def key(family: str, params: dict[str, Any] | None = None) -> QueryKey:
        items = tuple(sorted((k, str(v)) for k, v in (params or {}).items() if v is not None))
        return family, items

    def get_or_fetch(self, key: QueryKey, fetch: Callable[[], T]) -> T:
        if self.enabled and key in self._entries:
            logger.debug(f"Cache hit: {key}")
            return self._entries[key]
        value = fetch()
        if self.enabled:
            self._entries[key] = value
        return value

    def invalidate(self, families: Iterable[str]) -> None:
        families = set(families)
        stale = [k for k in self._entries if k[0] in families]
        for k in stale:
            del self._entries[k]
        logger.debug(f"Invalidated {len(stale)} cached queries for {sorted(families)}")

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: QueryKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class CivicBoardClient:
    """Synchronous client mirroring every API operation."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        retries: int | None = None,
        cache_enabled: bool | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Args:
            base_url: API root, e.g. ``http://localhost:8000``
            timeout: Request timeout in seconds
            retries: Attempts on transport errors
            cache_enabled: Toggle the query cache
            transport: Custom httpx transport (tests use ``httpx.MockTransport``)
        """
        self.base_url = (base_url or settings.client.base_url).rstrip("/")
        self.retries = retries or settings.client.retries
        self.cache = QueryCache(
            settings.client.cache_enabled if cache_enabled is None else cache_enabled
        )
        self._http = httpx.Client(
            base_url=self.base_url,
            timeout=timeout or settings.client.timeout,
            transport=transport,
        )
        logger.info(f"Initialized CivicBoardClient with base_url: {self.base_url}")

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> CivicBoardClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
    ) -> Any:
        """Send a request, retrying transport errors, and decode the JSON body.

        Raises:
            APIError: For error responses, or when every attempt failed to connect
        """
        try:
            for attempt in Retrying(
                stop=stop_after_attempt(self.retries),
                wait=wait_exponential(multiplier=0.5, max=4),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    logger.debug(f"{method} {path} (attempt {attempt.retry_state.attempt_number})")
                    response = self._http.request(method, path, params=params, json=json_data)
        except httpx.TransportError as e:
            raise APIError(f"Request failed after {self.retries} attempts: {e}") from e

        if response.is_success:
            return response.json()

        try:
            body = response.json()
        except ValueError:
            body = {}
        error = body.get("error") if isinstance(body, dict) else None
        detail = body.get("detail") if isinstance(body, dict) else None
        raise APIError(detail or f"HTTP {response.status_code}", response.status_code, error)

    def _query(self, family: str, path: str, params: dict[str, Any] | None = None) -> Any:
        params = {k: v for k, v in (params or {}).items() if v is not None}
        key = QueryCache.key(family, {"path": path, **params})
        return self.cache.get_or_fetch(key, lambda: self._request("GET", path, params=params or None))

    def _mutate(self, operation: str, method: str, path: str, json_data: Any = None) -> Any:
        data = self._request(method, path, json_data=json_data)
        self.cache.invalidate(INVALIDATES[operation])
        return data

    # Queries

    def health(self) -> HealthResponse:
        return HealthResponse.model_validate(self._request("GET", "/health"))

    def list_submissions(
        self,
        *,
        category: SubmissionCategory | str | None = None,
        neighborhood: Neighborhood | str | None = None,
        status: SubmissionStatus | str | None = None,
    ) -> list[SubmissionOut]:
        params = {
            "category": getattr(category, "value", category),
            "neighborhood": getattr(neighborhood, "value", neighborhood),
            "status": getattr(status, "value", status),
        }
        data = self._query(SUBMISSIONS, "/api/submissions", params)
        return TypeAdapter(list[SubmissionOut]).validate_python(data)

    def get_submission(self, submission_id: str) -> SubmissionOut:
        data = self._query(SUBMISSIONS, f"/api/submissions/{submission_id}")
        return SubmissionOut.model_validate(data)

    def get_stats(self) -> DashboardStats:
        return DashboardStats.model_validate(self._query(STATS, "/api/stats"))

    def get_match_suggestions(self) -> list[MatchSuggestionOut]:
        data = self._query(MATCH_SUGGESTIONS, "/api/match-suggestions")
        return TypeAdapter(list[MatchSuggestionOut]).validate_python(data)

    def get_neighborhoods(self) -> list[str]:
        return self._query("neighborhoods", "/api/neighborhoods")

    # Mutations

    def create_submission(self, data: SubmissionCreate | dict) -> SubmissionOut:
        if isinstance(data, SubmissionCreate):
            data = data.model_dump(mode="json", by_alias=True, exclude_none=True)
        created = self._mutate("create_submission", "POST", "/api/submissions", data)
        return SubmissionOut.model_validate(created)

    def update_submission(self, submission_id: str, patch: SubmissionUpdate | dict) -> SubmissionOut:
        if isinstance(patch, SubmissionUpdate):
            patch = patch.model_dump(mode="json", by_alias=True, include=patch.model_fields_set)
        updated = self._mutate("update_submission", "PATCH", f"/api/submissions/{submission_id}", patch)
        return SubmissionOut.model_validate(updated)

    def confirm_match(self, need_id: str, offer_id: str) -> MatchConfirmationOut:
        data = self._mutate("confirm_match", "POST", f"/api/submissions/{need_id}/match/{offer_id}")
        return MatchConfirmationOut.model_validate(data)
