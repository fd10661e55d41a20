"""
Pytest configuration and shared fixtures for the quality scoring tests.

Provides in-memory stand-ins for the service seams so the engine and the
HTTP surface can be exercised without PostgreSQL or real webhook endpoints:
- FakeBusinessRepository: BusinessRepository over a dict, with hooks for
  vanished businesses, failing reads and gated reads
- RecordingAuditLogger: AuditLogger that keeps every entry in memory
- WebhookRecorder: httpx.MockTransport handler capturing webhook POSTs
- Profile builders for complete, bare and partially filled businesses

Settings fixtures zero the batch pacing delays so async jobs finish as
soon as the event loop lets them.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set, Tuple
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from suburbmates.core.config import Settings
from suburbmates.core.dependencies import ServiceContainer, build_services
from suburbmates.jobs.batch_rescore import BatchJobManager
from suburbmates.jobs.store import InMemoryJobStore
from suburbmates.models.enums import AbnStatus, ApprovalStatus
from suburbmates.models.schemas import (
    AuditEntry,
    BusinessFilter,
    BusinessProfile,
    CurrentUser,
)
from suburbmates.services.audit import AuditLogger
from suburbmates.services.repository import BusinessRepository
from suburbmates.services.webhooks import WebhookNotifier


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """Register the markers used across the suite."""
    config.addinivalue_line("markers", "api: tests that go through the FastAPI app")


# ============================================================
# PROFILE BUILDERS
# ============================================================

REFERENCE_NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)

LONG_BIO = (
    "Family-run bakery in the heart of Fitzroy baking sourdough and pastries "
    "fresh every morning since 1998."
)


def complete_profile(business_id: str = "biz-complete", **overrides: Any) -> BusinessProfile:
    """A profile that passes every scoring check (score 100)."""
    data: Dict[str, Any] = dict(
        id=business_id,
        name="Fitzroy Bakehouse",
        slug="fitzroy-bakehouse",
        suburb="Fitzroy",
        category="Bakery",
        bio=LONG_BIO,
        phone="03 9000 0000",
        email="hello@bakehouse.example",
        website="https://bakehouse.example",
        address="1 Brunswick St, Fitzroy VIC 3065",
        latitude=-37.7986,
        longitude=144.9784,
        abn="51824753556",
        abnStatus=AbnStatus.VERIFIED,
        approvalStatus=ApprovalStatus.APPROVED,
        showBusinessHours=True,
        gallery=["https://cdn.example/bakehouse/1.jpg"],
        recentInquiries=2,
        recentLeads=1,
        qualityScore=100,
        createdAt=REFERENCE_NOW - timedelta(days=400),
        updatedAt=REFERENCE_NOW - timedelta(days=10),
    )
    data.update(overrides)
    return BusinessProfile(**data)


def bare_profile(business_id: str = "biz-bare", **overrides: Any) -> BusinessProfile:
    """An approved profile with nothing filled in (score 10)."""
    data: Dict[str, Any] = dict(
        id=business_id,
        approvalStatus=ApprovalStatus.APPROVED,
        qualityScore=10,
    )
    data.update(overrides)
    return BusinessProfile(**data)


# ============================================================
# FAKE COLLABORATORS
# ============================================================

class FakeBusinessRepository(BusinessRepository):
    """
    In-memory BusinessRepository.

    Attributes:
        vanished: ids that find_unique reports as missing
        failing: ids whose find_unique raises RuntimeError
        gate: when set, find_unique waits for the event before answering
        updates: (business_id, patch) pairs in call order
    """

    def __init__(self, profiles: Optional[List[BusinessProfile]] = None) -> None:
        self.profiles: Dict[str, BusinessProfile] = {p.id: p for p in profiles or []}
        self.vanished: Set[str] = set()
        self.failing: Set[str] = set()
        self.gate: Optional[asyncio.Event] = None
        self.updates: List[Tuple[str, Dict[str, Any]]] = []

    def add(self, *profiles: BusinessProfile) -> None:
        for profile in profiles:
            self.profiles[profile.id] = profile

    @staticmethod
    def _matches(profile: BusinessProfile, business_filter: BusinessFilter) -> bool:
        f = business_filter
        if f.businessIds is not None and profile.id not in f.businessIds:
            return False
        if f.minScore is not None and profile.qualityScore < f.minScore:
            return False
        if f.maxScore is not None and profile.qualityScore > f.maxScore:
            return False
        if f.category is not None and profile.category != f.category:
            return False
        if f.suburb is not None and profile.suburb != f.suburb:
            return False
        if f.abnStatus is not None and profile.abnStatus != f.abnStatus:
            return False
        if f.approvalStatus is not None and profile.approvalStatus != f.approvalStatus:
            return False
        return True

    async def find_many(
        self,
        business_filter: BusinessFilter,
        include_related: bool = False,
        limit: Optional[int] = None,
    ) -> List[BusinessProfile]:
        matches = [p for p in self.profiles.values() if self._matches(p, business_filter)]
        matches.sort(key=lambda p: (p.qualityScore, p.id))
        if limit is not None:
            matches = matches[:limit]
        return [p.model_copy(deep=True) for p in matches]

    async def find_unique(
        self,
        business_id: str,
        include_related: bool = True,
    ) -> Optional[BusinessProfile]:
        if self.gate is not None:
            await self.gate.wait()
        if business_id in self.failing:
            raise RuntimeError("connection reset by peer")
        if business_id in self.vanished:
            return None
        profile = self.profiles.get(business_id)
        return profile.model_copy(deep=True) if profile else None

    async def update(self, business_id: str, patch: Dict[str, Any]) -> BusinessProfile:
        self.updates.append((business_id, dict(patch)))
        updated = self.profiles[business_id].model_copy(update=patch)
        self.profiles[business_id] = updated
        return updated


class RecordingAuditLogger(AuditLogger):
    """AuditLogger that keeps entries in memory."""

    def __init__(self) -> None:
        self.entries: List[AuditEntry] = []

    async def write(
        self,
        event_type: str,
        target_id: Optional[str],
        actor_id: Optional[str],
        metadata: Dict[str, Any],
        request_origin: str,
        user_agent: str,
    ) -> None:
        self.entries.append(
            AuditEntry(
                eventType=event_type,
                targetId=target_id,
                actorId=actor_id,
                metadata=metadata,
                requestOrigin=request_origin,
                userAgent=user_agent,
            )
        )

    @property
    def events(self) -> List[str]:
        return [entry.eventType for entry in self.entries]


class WebhookRecorder:
    """httpx.MockTransport handler recording each POSTed JSON payload."""

    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"ok": True})

    @property
    def payloads(self) -> List[Dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def mock_db_pool() -> AsyncMock:
    """
    Mock asyncpg pool: pool.acquire() yields a connection whose fetch,
    fetchrow and execute are AsyncMocks.

    Usage:
        mock_db_pool.acquire.return_value.__aenter__.return_value.fetch.return_value = [row]
    """
    pool = AsyncMock()

    conn = AsyncMock()
    conn.execute = AsyncMock(return_value="UPDATE 1")
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)

    acquire_context = AsyncMock()
    acquire_context.__aenter__ = AsyncMock(return_value=conn)
    acquire_context.__aexit__ = AsyncMock(return_value=None)
    pool.acquire = Mock(return_value=acquire_context)

    return pool


@pytest.fixture
def settings() -> Settings:
    """Settings with batch pacing disabled and a small webhook interval."""
    return Settings(
        _env_file=None,
        batch_chunk_pause_seconds=0,
        batch_queue_delay_seconds=0,
        batch_webhook_interval=10,
    )


@pytest.fixture
def repository() -> FakeBusinessRepository:
    return FakeBusinessRepository()


@pytest.fixture
def audit() -> RecordingAuditLogger:
    return RecordingAuditLogger()


@pytest.fixture
def webhook_recorder() -> WebhookRecorder:
    return WebhookRecorder()


@pytest.fixture
def notifier(webhook_recorder: WebhookRecorder) -> WebhookNotifier:
    return WebhookNotifier(timeout=1.0, transport=httpx.MockTransport(webhook_recorder))


@pytest.fixture
def job_store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def manager(
    repository: FakeBusinessRepository,
    job_store: InMemoryJobStore,
    audit: RecordingAuditLogger,
    notifier: WebhookNotifier,
    settings: Settings,
) -> BatchJobManager:
    return BatchJobManager(
        repository=repository,
        store=job_store,
        audit=audit,
        notifier=notifier,
        settings=settings,
    )


@pytest.fixture
def services(
    settings: Settings,
    repository: FakeBusinessRepository,
    audit: RecordingAuditLogger,
    job_store: InMemoryJobStore,
    notifier: WebhookNotifier,
) -> ServiceContainer:
    """Full service graph over the in-memory collaborators."""
    return build_services(
        settings=settings,
        repository=repository,
        audit=audit,
        job_store=job_store,
        notifier=notifier,
    )


@pytest.fixture
def admin() -> CurrentUser:
    return CurrentUser(id="admin-1", role="ADMIN")


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return {"X-User-Id": "admin-1", "X-User-Role": "ADMIN"}
