"""
FastAPI dependency injection for the quality scoring service.

The service objects (repository, audit sink, stats cache, job manager) are
built once per application and held in a ServiceContainer on
``app.state.services``. Endpoints receive them through the Annotated
aliases below, so tests can swap any of them by building the app with their
own container or through ``app.dependency_overrides``.

Authentication itself happens in the fronting web tier, which forwards the
signed-in identity as ``X-User-Id`` and ``X-User-Role`` headers. Every
scoring endpoint depends on require_admin, which rejects the request with
403 before any data is touched.

Usage:
    @router.get("/stats")
    async def get_stats(services: ServicesDep, admin: AdminDep) -> dict:
        ...
"""

from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends, Header, Request

from suburbmates.core.config import Settings, get_settings
from suburbmates.core.exceptions import AuthorizationError
from suburbmates.jobs.batch_rescore import BatchJobManager
from suburbmates.jobs.store import InMemoryJobStore, JobStore
from suburbmates.models.schemas import CurrentUser
from suburbmates.services.audit import AuditLogger, PostgresAuditLogger
from suburbmates.services.quality_stats import StatsCache
from suburbmates.services.repository import BusinessRepository, PostgresBusinessRepository
from suburbmates.services.webhooks import WebhookNotifier


@dataclass
class ServiceContainer:
    """The per-application service graph."""

    settings: Settings
    repository: BusinessRepository
    audit: AuditLogger
    stats_cache: StatsCache
    job_store: JobStore
    jobs: BatchJobManager


def build_services(
    settings: Optional[Settings] = None,
    repository: Optional[BusinessRepository] = None,
    audit: Optional[AuditLogger] = None,
    job_store: Optional[JobStore] = None,
    notifier: Optional[WebhookNotifier] = None,
) -> ServiceContainer:
    """
    Wire the service graph, defaulting to the PostgreSQL adapters and an
    in-memory job store.
    """
    settings = settings or get_settings()
    repository = repository or PostgresBusinessRepository(settings.engagement_window_days)
    audit = audit or PostgresAuditLogger()
    job_store = job_store or InMemoryJobStore()
    notifier = notifier or WebhookNotifier(timeout=settings.webhook_timeout_seconds)

    return ServiceContainer(
        settings=settings,
        repository=repository,
        audit=audit,
        stats_cache=StatsCache(ttl_seconds=settings.stats_cache_ttl_seconds),
        job_store=job_store,
        jobs=BatchJobManager(
            repository=repository,
            store=job_store,
            audit=audit,
            notifier=notifier,
            settings=settings,
        ),
    )


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


async def get_current_user(
    x_user_id: Annotated[Optional[str], Header()] = None,
    x_user_role: Annotated[Optional[str], Header()] = None,
) -> Optional[CurrentUser]:
    """Identity forwarded by the web tier, or None for anonymous requests."""
    if not x_user_id:
        return None
    return CurrentUser(id=x_user_id, role=x_user_role or "USER")


async def require_admin(
    user: Annotated[Optional[CurrentUser], Depends(get_current_user)],
) -> CurrentUser:
    """
    Reject anyone but an authenticated admin.

    Raises:
        AuthorizationError: 403 with "Unauthorized. Admin access required."
    """
    if user is None or not user.is_admin:
        raise AuthorizationError()
    return user


@dataclass
class RequestOrigin:
    """Client details recorded with audit events."""

    ip: str
    user_agent: str


def get_request_origin(
    x_forwarded_for: Annotated[Optional[str], Header()] = None,
    user_agent: Annotated[Optional[str], Header()] = None,
) -> RequestOrigin:
    return RequestOrigin(ip=x_forwarded_for or "unknown", user_agent=user_agent or "unknown")


ServicesDep = Annotated[ServiceContainer, Depends(get_services)]

AdminDep = Annotated[CurrentUser, Depends(require_admin)]

OriginDep = Annotated[RequestOrigin, Depends(get_request_origin)]
