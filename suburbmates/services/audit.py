"""
Admin audit log sink.

Every read of aggregate scoring data and every batch lifecycle transition is
recorded. Audit writes are best effort: a failing sink is logged and never
aborts the operation being audited.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from uuid import uuid4

from suburbmates.core.database import execute_command
from suburbmates.sql.business_queries import INSERT_AUDIT_LOG_QUERY


logger = logging.getLogger(__name__)


class AuditLogger(ABC):
    """Records admin events. Implementations must not raise from log()."""

    async def log(
        self,
        event_type: str,
        target_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        request_origin: str = "unknown",
        user_agent: str = "unknown",
    ) -> None:
        event_name = getattr(event_type, "value", event_type)
        try:
            await self.write(
                event_name,
                target_id,
                actor_id,
                metadata or {},
                request_origin,
                user_agent,
            )
        except Exception as e:
            logger.error(f"Failed to log audit event {event_name}: {e}")

    @abstractmethod
    async def write(
        self,
        event_type: str,
        target_id: Optional[str],
        actor_id: Optional[str],
        metadata: Dict[str, Any],
        request_origin: str,
        user_agent: str,
    ) -> None:
        """Persist one event. May raise; log() absorbs failures."""


class PostgresAuditLogger(AuditLogger):
    """Writes events to the audit_logs table."""

    async def write(
        self,
        event_type: str,
        target_id: Optional[str],
        actor_id: Optional[str],
        metadata: Dict[str, Any],
        request_origin: str,
        user_agent: str,
    ) -> None:
        meta = {**metadata, "adminUserId": actor_id}
        await execute_command(
            INSERT_AUDIT_LOG_QUERY,
            uuid4().hex,
            event_type,
            target_id,
            actor_id,
            json.dumps(meta, default=str),
            request_origin,
            user_agent,
        )
