"""
Batch rescoring jobs.

- store: JobStore interface, InMemoryJobStore and CancellationToken
- batch_rescore: BatchJobManager (state machine, sync/async execution,
  cancellation, webhooks) and the shared rescore_business step

Jobs run as asyncio tasks inside the API process; the job store is injected
so a shared backend can replace the in-memory one.
"""

from suburbmates.jobs.batch_rescore import BatchJobManager, rescore_business
from suburbmates.jobs.store import CancellationToken, InMemoryJobStore, JobStore

__all__ = [
    'BatchJobManager',
    'rescore_business',
    'CancellationToken',
    'InMemoryJobStore',
    'JobStore',
]
