"""
Batch job storage and cancellation primitives.

JobStore is injected into BatchJobManager so the backing store can be
swapped: InMemoryJobStore suits a single-instance deployment, a shared
key-value store is needed once several instances serve the admin API.
The store itself does no locking; the manager serializes writes per job.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from suburbmates.models.schemas import BatchJob


class CancellationToken:
    """Cooperative cancellation flag handed explicitly to a job's run loop."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class JobStore(ABC):
    """Persistence for BatchJob records."""

    @abstractmethod
    async def get(self, job_id: str) -> Optional[BatchJob]:
        ...

    @abstractmethod
    async def save(self, job: BatchJob) -> None:
        ...

    @abstractmethod
    async def delete(self, job_id: str) -> None:
        ...

    @abstractmethod
    async def list_all(self) -> List[BatchJob]:
        ...


class InMemoryJobStore(JobStore):
    """
    Process-local job store.

    Records are held by reference: the object returned by get() is the live
    record, which keeps progress updates on large jobs O(1).
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, BatchJob] = {}

    async def get(self, job_id: str) -> Optional[BatchJob]:
        return self._jobs.get(job_id)

    async def save(self, job: BatchJob) -> None:
        self._jobs[job.id] = job

    async def delete(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)

    async def list_all(self) -> List[BatchJob]:
        return list(self._jobs.values())

    def __len__(self) -> int:
        return len(self._jobs)
