"""
Error taxonomy for the quality scoring service.

Services raise these exceptions; the handlers registered by
register_exception_handlers() turn them into JSON responses of the form
``{"error": <message>, ...details}`` with the exception's status code.

Hierarchy:
- QualityScoringError (500)
    - InvalidRequestError (400)
        - NoMatchingBusinessesError
    - NotFoundError (404)
    - AuthorizationError (403)
    - ResourceStateError (400, carries the current state)
        - SyncBatchTooLargeError
        - JobAlreadyFinishedError
        - JobAlreadyCancelledError
    - WebhookDeliveryError (never reaches a client)

Request body validation stays with pydantic and FastAPI's 422 handler.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


logger = logging.getLogger(__name__)


class QualityScoringError(Exception):
    """Base class for errors surfaced by the scoring engine."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, **self.details}


class InvalidRequestError(QualityScoringError):
    status_code = 400


class NoMatchingBusinessesError(InvalidRequestError):
    def __init__(self) -> None:
        super().__init__("No businesses match the specified criteria")


class NotFoundError(QualityScoringError):
    status_code = 404


class AuthorizationError(QualityScoringError):
    status_code = 403

    def __init__(self, message: str = "Unauthorized. Admin access required.") -> None:
        super().__init__(message)


class ResourceStateError(QualityScoringError):
    """Illegal transition or request for the resource's current state."""

    status_code = 400

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        merged = dict(details or {})
        if current_status is not None:
            merged["currentStatus"] = current_status
        super().__init__(message, details=merged)
        self.current_status = current_status


class SyncBatchTooLargeError(ResourceStateError):
    def __init__(self, target_count: int, limit: int) -> None:
        super().__init__(
            f"Large batches (>{limit}) must use async processing",
            details={"targetCount": target_count, "maxSyncSize": limit},
        )


class JobAlreadyFinishedError(ResourceStateError):
    def __init__(self, current_status: str) -> None:
        super().__init__(f"Cannot cancel {current_status} job", current_status=current_status)


class JobAlreadyCancelledError(ResourceStateError):
    def __init__(self) -> None:
        super().__init__("Job already cancelled", current_status="cancelled")


class WebhookDeliveryError(QualityScoringError):
    """Raised inside the notifier when a POST fails; logged, never propagated."""

    status_code = 502


async def _quality_scoring_error_handler(
    request: Request, exc: QualityScoringError
) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the JSON error handlers for the QualityScoringError hierarchy."""
    app.add_exception_handler(QualityScoringError, _quality_scoring_error_handler)
