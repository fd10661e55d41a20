"""
Contract tests for the /admin/quality-scoring HTTP surface.

The app is built with create_app() over the in-memory service graph and
driven through httpx's ASGI transport, so routing, validation, the admin
guard and the error handlers are all exercised.

Test Classes:
- TestAdminGuard: 403 for anonymous and non-admin callers
- TestLowQualityEndpoint: filters, clamping and the optional stats block
- TestStatsEndpoint: cache source reporting and forced refresh
- TestCalculateEndpoint: single-business recalculation
- TestBatchUpdateEndpoints: submit, list, status, cancel and bulk cancel
- TestBusinessAnalysisEndpoint: read-only detailed analysis of one business
"""

from typing import AsyncGenerator, Dict
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio

from suburbmates.core.dependencies import ServiceContainer
from suburbmates.main import create_app
from suburbmates.models.enums import AuditEvent, ApprovalStatus
from suburbmates.tests.conftest import (
    FakeBusinessRepository,
    bare_profile,
    complete_profile,
)


# Mark all tests in this module as async
pytestmark = [pytest.mark.asyncio, pytest.mark.api]

BASE = "/admin/quality-scoring"


@pytest.fixture
def populated(repository: FakeBusinessRepository) -> FakeBusinessRepository:
    repository.add(
        bare_profile("bare", name="Acme Plumbing", suburb="Carlton", qualityScore=10),
        complete_profile("phone-missing", phone=None, suburb="Fitzroy", qualityScore=80),
        complete_profile("low-stored", email=None, suburb="Carlton", qualityScore=45),
        complete_profile("complete", qualityScore=100),
        bare_profile("pending", approvalStatus=ApprovalStatus.PENDING, qualityScore=5),
    )
    return repository


@pytest_asyncio.fixture
async def client(
    services: ServiceContainer,
    populated: FakeBusinessRepository,
) -> AsyncGenerator[httpx.AsyncClient, None]:
    app = create_app(services)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
    await services.jobs.shutdown()


class TestAdminGuard:
    """Every endpoint requires an admin identity."""

    async def test_anonymous_request_is_rejected(self, client: httpx.AsyncClient) -> None:
        response = await client.get(f"{BASE}/stats")

        assert response.status_code == 403
        assert response.json() == {"error": "Unauthorized. Admin access required."}

    async def test_non_admin_is_rejected(self, client: httpx.AsyncClient, services: ServiceContainer) -> None:
        response = await client.post(
            f"{BASE}/batch-update",
            json={},
            headers={"X-User-Id": "user-7", "X-User-Role": "USER"},
        )

        assert response.status_code == 403
        assert len(services.job_store) == 0

    async def test_health_is_public(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestLowQualityEndpoint:
    """GET /low-quality."""

    async def test_default_range(
        self, client: httpx.AsyncClient, admin_headers: Dict[str, str], audit
    ) -> None:
        response = await client.get(f"{BASE}/low-quality", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert {b["id"] for b in body["businesses"]} == {"bare", "low-stored"}
        assert body["filters"]["maxScore"] == 69
        assert body["sorting"] == {"sortBy": "priority", "sortOrder": "desc"}
        assert body["pagination"]["totalCount"] == 2
        assert body["stats"] is None
        assert body["businesses"][0]["improvementPriority"] >= body["businesses"][1]["improvementPriority"]
        assert AuditEvent.LOW_QUALITY_ACCESS.value in audit.events

    async def test_page_and_limit_are_clamped(
        self, client: httpx.AsyncClient, admin_headers: Dict[str, str]
    ) -> None:
        response = await client.get(
            f"{BASE}/low-quality",
            params={"page": 0, "limit": 500, "maxScore": 100},
            headers=admin_headers,
        )

        pagination = response.json()["pagination"]
        assert pagination["page"] == 1
        assert pagination["limit"] == 100
        assert pagination["totalCount"] == 4

    async def test_filters_and_stats(
        self, client: httpx.AsyncClient, admin_headers: Dict[str, str]
    ) -> None:
        response = await client.get(
            f"{BASE}/low-quality",
            params={"suburb": "Carlton", "stats": "true", "sortBy": "score", "sortOrder": "asc"},
            headers=admin_headers,
        )

        body = response.json()
        assert [b["id"] for b in body["businesses"]] == ["bare", "low-stored"]
        assert body["stats"]["totalCount"] == 2
        assert body["stats"]["criticalCount"] == 1
        assert body["stats"]["lowCount"] == 1

    async def test_invalid_sort_field(
        self, client: httpx.AsyncClient, admin_headers: Dict[str, str]
    ) -> None:
        response = await client.get(
            f"{BASE}/low-quality", params={"sortBy": "rating"}, headers=admin_headers
        )

        assert response.status_code == 422


class TestStatsEndpoint:
    """GET /stats."""

    async def test_second_read_is_served_from_cache(
        self, client: httpx.AsyncClient, admin_headers: Dict[str, str], audit
    ) -> None:
        first = await client.get(f"{BASE}/stats", headers=admin_headers)
        second = await client.get(f"{BASE}/stats", headers=admin_headers)

        assert first.status_code == 200
        first_stats = first.json()["stats"]
        assert first_stats["cacheInfo"]["source"] == "database"
        assert first_stats["overview"]["totalBusinesses"] == 4
        assert len(first_stats["distribution"]) == 10
        assert second.json()["stats"]["cacheInfo"]["source"] == "cache"

        stats_events = [e for e in audit.entries if e.eventType == AuditEvent.STATS_ACCESS.value]
        assert [e.metadata["cacheHit"] for e in stats_events] == [False, True]

    async def test_refresh_bypasses_cache(
        self, client: httpx.AsyncClient, admin_headers: Dict[str, str]
    ) -> None:
        await client.get(f"{BASE}/stats", headers=admin_headers)
        response = await client.get(f"{BASE}/stats", params={"refresh": "true"}, headers=admin_headers)

        assert response.json()["stats"]["cacheInfo"]["source"] == "database"


class TestCalculateEndpoint:
    """POST /calculate/{business_id}."""

    async def test_recalculates_and_persists(
        self,
        client: httpx.AsyncClient,
        admin_headers: Dict[str, str],
        populated: FakeBusinessRepository,
    ) -> None:
        response = await client.post(f"{BASE}/calculate/phone-missing", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Quality score increased by 10 points"
        calculation = body["calculation"]
        assert calculation["previousScore"] == 80
        assert calculation["newScore"] == 90
        assert calculation["missingFields"] == ["Phone Number"]
        assert [step["action"] for step in calculation["nextSteps"]] == ["Add phone number"]
        assert len(calculation["breakdown"]) == 11
        assert populated.profiles["phone-missing"].qualityScore == 90

    async def test_next_steps_limited_to_five(
        self, client: httpx.AsyncClient, admin_headers: Dict[str, str]
    ) -> None:
        response = await client.post(f"{BASE}/calculate/bare", headers=admin_headers)

        body = response.json()
        assert body["message"] == "Quality score unchanged"
        assert len(body["calculation"]["nextSteps"]) == 5

    async def test_unknown_business(
        self, client: httpx.AsyncClient, admin_headers: Dict[str, str]
    ) -> None:
        response = await client.post(f"{BASE}/calculate/nope", headers=admin_headers)

        assert response.status_code == 404
        assert response.json()["error"] == "Business not found"

    async def test_unapproved_business(
        self, client: httpx.AsyncClient, admin_headers: Dict[str, str]
    ) -> None:
        response = await client.post(f"{BASE}/calculate/pending", headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["currentStatus"] == "PENDING"

    async def test_business_deleted_before_update(
        self,
        client: httpx.AsyncClient,
        admin_headers: Dict[str, str],
        populated: FakeBusinessRepository,
        audit,
    ) -> None:
        populated.update = AsyncMock(side_effect=LookupError("Business bare disappeared during update"))

        response = await client.post(f"{BASE}/calculate/bare", headers=admin_headers)

        assert response.status_code == 404
        assert response.json() == {"error": "Business not found", "businessId": "bare"}
        assert AuditEvent.CALCULATE_ERROR.value not in audit.events


class TestBatchUpdateEndpoints:
    """The /batch-update resource."""

    async def test_sync_submission_returns_finished_job(
        self, client: httpx.AsyncClient, admin_headers: Dict[str, str], audit
    ) -> None:
        response = await client.post(
            f"{BASE}/batch-update",
            json={"criteria": {"maxScore": 90}, "options": {"async": False}},
            headers=admin_headers,
        )

        assert response.status_code == 200
        body = response.json()
        job = body["job"]
        assert body["jobId"] == job["id"]
        assert job["status"] == "completed"
        assert job["options"]["async"] is False
        assert job["progress"]["processed"] == 3
        assert "targetIds" not in job
        assert AuditEvent.BATCH_START.value in audit.events

    async def test_async_submission_runs_in_background(
        self,
        client: httpx.AsyncClient,
        admin_headers: Dict[str, str],
        services: ServiceContainer,
    ) -> None:
        response = await client.post(f"{BASE}/batch-update", json={}, headers=admin_headers)

        body = response.json()
        assert body["job"]["status"] == "pending"
        assert body["message"] == "Batch update started for 4 businesses"

        await services.jobs.join(body["jobId"])
        status = await client.get(
            f"{BASE}/batch-update/{body['jobId']}",
            params={"results": "true"},
            headers=admin_headers,
        )
        job = status.json()["job"]
        assert job["status"] == "completed"
        assert job["summary"]["successfulCount"] == 4
        assert len(job["results"]["successful"]) == 4

    async def test_no_matching_businesses(
        self, client: httpx.AsyncClient, admin_headers: Dict[str, str]
    ) -> None:
        response = await client.post(
            f"{BASE}/batch-update",
            json={"criteria": {"category": "Astronomy"}},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json() == {"error": "No businesses match the specified criteria"}

    @pytest.mark.parametrize(
        "payload",
        [
            {"criteria": {"minScore": 80, "maxScore": 20}},
            {"criteria": {"limit": 0}},
            {"criteria": {"limit": 5001}},
            {"criteria": {"rating": 5}},
            {"options": {"webhookUrl": "ftp://hooks.example"}},
            {"options": {"webhookUrl": "http://[::1"}},
        ],
    )
    async def test_invalid_bodies(
        self, client: httpx.AsyncClient, admin_headers: Dict[str, str], payload: dict
    ) -> None:
        response = await client.post(f"{BASE}/batch-update", json=payload, headers=admin_headers)

        assert response.status_code == 422

    async def test_list_and_cancel_finished_job(
        self, client: httpx.AsyncClient, admin_headers: Dict[str, str]
    ) -> None:
        submitted = await client.post(
            f"{BASE}/batch-update", json={"options": {"async": False}}, headers=admin_headers
        )
        job_id = submitted.json()["jobId"]

        listing = await client.get(f"{BASE}/batch-update", headers=admin_headers)
        body = listing.json()
        assert body["total"] == 1
        assert body["jobs"][0]["id"] == job_id
        assert body["jobs"][0]["results"] == {"successful": 4, "failed": 0}

        cancel = await client.delete(f"{BASE}/batch-update/{job_id}", headers=admin_headers)
        assert cancel.status_code == 400
        assert cancel.json() == {"error": "Cannot cancel completed job", "currentStatus": "completed"}

    async def test_unknown_job(self, client: httpx.AsyncClient, admin_headers: Dict[str, str]) -> None:
        status = await client.get(f"{BASE}/batch-update/batch_0_missing", headers=admin_headers)
        cancel = await client.delete(f"{BASE}/batch-update/batch_0_missing", headers=admin_headers)

        assert status.status_code == 404
        assert status.json()["error"] == "Job not found"
        assert cancel.status_code == 404

    async def test_bulk_cancel(
        self,
        client: httpx.AsyncClient,
        admin_headers: Dict[str, str],
        services: ServiceContainer,
    ) -> None:
        services.settings.batch_queue_delay_seconds = 0.05
        submitted = await client.post(f"{BASE}/batch-update", json={}, headers=admin_headers)
        job_id = submitted.json()["jobId"]

        response = await client.request(
            "DELETE",
            f"{BASE}/batch-update",
            json={"jobIds": [job_id, "batch_0_missing"]},
            headers=admin_headers,
        )
        await services.jobs.join(job_id)

        body = response.json()
        assert body["cancelledCount"] == 1
        assert body["results"] == [
            {"jobId": job_id, "result": "cancelled", "status": "cancelled"},
            {"jobId": "batch_0_missing", "result": "not_found", "status": None},
        ]

    async def test_bulk_cancel_rejects_too_many_ids(
        self, client: httpx.AsyncClient, admin_headers: Dict[str, str]
    ) -> None:
        response = await client.request(
            "DELETE",
            f"{BASE}/batch-update",
            json={"jobIds": [f"batch_{i}" for i in range(11)]},
            headers=admin_headers,
        )

        assert response.status_code == 422


class TestBusinessAnalysisEndpoint:
    """GET /{business_id}."""

    async def test_detailed_analysis(
        self,
        client: httpx.AsyncClient,
        admin_headers: Dict[str, str],
        populated: FakeBusinessRepository,
        audit,
    ) -> None:
        response = await client.get(f"{BASE}/phone-missing", headers=admin_headers)

        assert response.status_code == 200
        analysis = response.json()["analysis"]
        assert analysis["currentScore"] == 90
        assert analysis["storedScore"] == 80
        assert analysis["level"] == "high"
        assert analysis["competitorComparison"] == {
            "categoryAverage": 73,
            "suburbAverage": 100,
            "ranking": {"inCategory": 2, "totalInCategory": 3, "inSuburb": 2, "totalInSuburb": 2},
        }
        assert analysis["improvementPlan"]["quickWins"] == ["Add phone number (+10 points)"]
        assert set(analysis["factors"]) == {"completeness", "verification", "recency", "contentRichness"}
        assert populated.profiles["phone-missing"].qualityScore == 80

        entry = audit.entries[-1]
        assert entry.eventType == AuditEvent.DETAIL_ACCESS.value
        assert entry.targetId == "phone-missing"
        assert entry.metadata["categoryComparison"]["categoryAverage"] == 73

    async def test_unknown_business(
        self, client: httpx.AsyncClient, admin_headers: Dict[str, str]
    ) -> None:
        response = await client.get(f"{BASE}/nope", headers=admin_headers)

        assert response.status_code == 404
        assert response.json()["error"] == "Business not found"

    async def test_fixed_paths_are_not_shadowed(
        self, client: httpx.AsyncClient, admin_headers: Dict[str, str], audit
    ) -> None:
        jobs = await client.get(f"{BASE}/batch-update", headers=admin_headers)
        stats = await client.get(f"{BASE}/stats", headers=admin_headers)

        assert jobs.json()["jobs"] == []
        assert "stats" in stats.json()
        assert AuditEvent.DETAIL_ACCESS.value not in audit.events

    async def test_requires_admin(self, client: httpx.AsyncClient) -> None:
        response = await client.get(
            f"{BASE}/phone-missing",
            headers={"X-User-Id": "user-7", "X-User-Role": "USER"},
        )

        assert response.status_code == 403
