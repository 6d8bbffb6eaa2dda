"""
Unit tests for CivicBoardClient.

Responses come from an ``httpx.MockTransport`` so the cache, invalidation and
error mapping can be checked without a server.
"""

import json

import httpx
import pytest

from civicboard.client import APIError, CivicBoardClient, QueryCache
from civicboard.schemas import SubmissionCreate, SubmissionUpdate

SUBMISSION = {
    "id": "s1",
    "category": "need",
    "status": "open",
    "title": "Groceries",
    "description": "Need help carrying groceries",
    "neighborhood": None,
    "contactName": None,
    "contactEmail": None,
    "hoursOffered": None,
    "matchedWithId": None,
    "createdAt": "2024-05-01T12:00:00",
    "updatedAt": "2024-05-01T12:00:00",
}

STATS = {
    "totalParticipants": 1,
    "totalNeedsReported": 1,
    "totalVolunteersOffered": 0,
    "totalIdeasShared": 0,
    "totalHoursOffered": 0,
    "estimatedCitizenHours": 2,
    "resolvedCount": 0,
    "matchedCount": 0,
}


class FakeServer:
    """Records requests and answers from a route table."""

    def __init__(self):
        self.requests: list[httpx.Request] = []

    def count(self, method, path):
        return sum(1 for r in self.requests if r.method == method and r.url.path == path)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "GET" and path == "/api/stats":
            return httpx.Response(200, json=STATS)
        if request.method == "GET" and path == "/api/submissions":
            return httpx.Response(200, json=[SUBMISSION])
        if request.method == "GET" and path == "/api/submissions/s1":
            return httpx.Response(200, json=SUBMISSION)
        if request.method == "GET" and path == "/api/submissions/missing":
            return httpx.Response(404, json={"error": "not_found", "detail": "Submission not found"})
        if request.method == "GET" and path == "/api/match-suggestions":
            return httpx.Response(200, json=[{"need": SUBMISSION, "offers": []}])
        if request.method == "POST" and path == "/api/submissions":
            return httpx.Response(201, json=SUBMISSION)
        if request.method == "PATCH" and path == "/api/submissions/s1":
            return httpx.Response(200, json={**SUBMISSION, "status": "resolved"})
        if request.method == "POST" and path == "/api/submissions/s1/match/s2":
            return httpx.Response(400, json={"error": "invalid_match", "detail": "Can only match a need with an offer"})
        return httpx.Response(500, text="boom")


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def client(server):
    with CivicBoardClient(
        "http://board.test/",
        transport=httpx.MockTransport(server),
        retries=2,
        cache_enabled=True,
    ) as c:
        yield c


class TestQueryCache:

    def test_key_ignores_param_order_and_none(self):
        assert QueryCache.key("submissions", {"a": 1, "b": None, "c": "x"}) == QueryCache.key(
            "submissions", {"c": "x", "a": "1"}
        )

    def test_invalidate_drops_only_named_families(self):
        cache = QueryCache()
        cache.get_or_fetch(QueryCache.key("stats"), lambda: 1)
        cache.get_or_fetch(QueryCache.key("neighborhoods"), lambda: 2)

        cache.invalidate(["stats"])

        assert QueryCache.key("stats") not in cache
        assert QueryCache.key("neighborhoods") in cache

    def test_disabled_cache_always_fetches(self):
        cache = QueryCache(enabled=False)
        calls = []

        cache.get_or_fetch(QueryCache.key("stats"), lambda: calls.append(1))
        cache.get_or_fetch(QueryCache.key("stats"), lambda: calls.append(1))

        assert len(calls) == 2
        assert len(cache) == 0


class TestCivicBoardClient:

    def test_base_url_trailing_slash_stripped(self, client):
        assert client.base_url == "http://board.test"

    def test_repeated_reads_are_cached(self, client, server):
        first = client.get_stats()
        second = client.get_stats()

        assert first == second
        assert first.estimated_citizen_hours == 2
        assert server.count("GET", "/api/stats") == 1

    def test_different_filters_are_different_queries(self, client, server):
        client.list_submissions(category="need")
        client.list_submissions(category="offer")
        client.list_submissions(category="need")

        assert server.count("GET", "/api/submissions") == 2
        assert server.requests[0].url.params["category"] == "need"

    def test_create_invalidates_dependent_queries(self, client, server):
        client.get_stats()
        client.list_submissions()
        client.get_match_suggestions()

        created = client.create_submission(
            SubmissionCreate(category="need", title="Groceries", description="Need help carrying groceries")
        )
        client.get_stats()
        client.list_submissions()
        client.get_match_suggestions()

        assert created.id == "s1"
        assert server.count("GET", "/api/stats") == 2
        assert server.count("GET", "/api/submissions") == 2
        assert server.count("GET", "/api/match-suggestions") == 2

    def test_create_sends_camel_case_without_nulls(self, client, server):
        client.create_submission(
            SubmissionCreate(category="offer", title="Rides", description="Rides to the clinic", hours_offered=2)
        )

        body = json.loads(server.requests[-1].content)
        assert body == {
            "category": "offer",
            "status": "open",
            "title": "Rides",
            "description": "Rides to the clinic",
            "hoursOffered": 2,
        }

    def test_update_sends_only_set_fields(self, client, server):
        updated = client.update_submission("s1", SubmissionUpdate(status="resolved"))

        assert updated.status.value == "resolved"
        assert json.loads(server.requests[-1].content) == {"status": "resolved"}

    def test_failed_mutation_keeps_cache(self, client, server):
        client.get_stats()

        with pytest.raises(APIError) as exc_info:
            client.confirm_match("s1", "s2")

        assert exc_info.value.status_code == 400
        assert exc_info.value.error == "invalid_match"
        assert exc_info.value.message == "Can only match a need with an offer"
        client.get_stats()
        assert server.count("GET", "/api/stats") == 1

    def test_not_found_maps_to_api_error(self, client):
        with pytest.raises(APIError) as exc_info:
            client.get_submission("missing")

        assert exc_info.value.status_code == 404
        assert exc_info.value.error == "not_found"

    def test_non_json_error_body(self, client):
        with pytest.raises(APIError) as exc_info:
            client.health()

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "HTTP 500"

    def test_transport_errors_are_retried(self):
        attempts = []

        def flaky(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json=STATS)

        with CivicBoardClient("http://board.test", transport=httpx.MockTransport(flaky), retries=2) as c:
            stats = c.get_stats()

        assert len(attempts) == 2
        assert stats.total_participants == 1

    def test_transport_errors_exhausted(self):
        def down(request):
            raise httpx.ConnectError("refused", request=request)

        with CivicBoardClient("http://board.test", transport=httpx.MockTransport(down), retries=1) as c:
            with pytest.raises(APIError) as exc_info:
                c.get_stats()

        assert exc_info.value.status_code is None
