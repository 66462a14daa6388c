"""
Apify platform access — the only module that talks to the Apify API.

ApifyPlatform exposes the narrow surface the monitor needs (status, dataset
pages, resurrect, abort) and converts Apify's run dicts into ExternalJob so
nothing downstream depends on Apify's field names. One instance is built per
tick or sync and passed in explicitly; tests substitute any object with the
same four methods.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger('services.apify')


class RunNotFoundError(LookupError):
    """The platform has no run with the given id."""


@dataclass
class ExternalJob:
    """A run as the platform reports it. Read-only to this service."""
    id: str
    status: str
    actor_ref: str = ''
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    item_count: int = 0
    duration_ms: int = 0
    dataset_ref: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class ItemPage:
    """One page of dataset items plus the dataset's reported total."""
    items: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0


def _as_datetime(value):
    """apify-client parses most timestamps already; strings still show up in older payloads."""
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None


class ApifyPlatform:
    """Thin wrapper around apify_client.ApifyClient, guarded by a circuit breaker."""

    def __init__(self, token: str, breaker=None, client=None):
        if client is None:
            from apify_client import ApifyClient
            client = ApifyClient(token)
        self.client = client
        self.breaker = breaker

    def _call(self, func, *args, **kwargs):
        if self.breaker is None:
            return func(*args, **kwargs)
        return self.breaker.call(func, *args, **kwargs)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_status(self, job_id: str) -> ExternalJob:
        """Current run state, with the item count read from its default dataset."""
        run = self._call(self.client.run(job_id).get)
        if not run:
            raise RunNotFoundError(f"Run {job_id} not found")

        job = self._to_job(run)
        if job.dataset_ref:
            dataset = self._call(self.client.dataset(job.dataset_ref).get)
            job.item_count = int((dataset or {}).get('itemCount') or 0)
        return job

    def list_items(self, dataset_ref: str, limit: int, offset: int) -> ItemPage:
        """One page of raw dataset items, field names untouched."""
        page = self._call(self.client.dataset(dataset_ref).list_items,
                          limit=limit, offset=offset)
        items = list(page.items or [])
        total = page.total if page.total is not None else offset + len(items)
        return ItemPage(items=items, total=int(total))

    def resurrect(self, job_id: str) -> ExternalJob:
        """Resume a finished run from where it stopped (same run id, same dataset)."""
        run = self._call(self.client.run(job_id).resurrect)
        if not run:
            raise RunNotFoundError(f"Run {job_id} not found")
        logger.info("Resurrected run %s, platform status now %s", job_id, run.get('status'))
        return self._to_job(run)

    def abort(self, job_id: str) -> ExternalJob:
        run = self._call(self.client.run(job_id).abort)
        if not run:
            raise RunNotFoundError(f"Run {job_id} not found")
        logger.info("Aborted run %s, platform status now %s", job_id, run.get('status'))
        return self._to_job(run)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_job(run: Dict[str, Any]) -> ExternalJob:
        stats = run.get('stats') or {}
        return ExternalJob(
            id=run.get('id', ''),
            status=run.get('status', ''),
            actor_ref=run.get('actId', '') or '',
            started_at=_as_datetime(run.get('startedAt')),
            finished_at=_as_datetime(run.get('finishedAt')),
            duration_ms=int(stats.get('durationMillis') or 0),
            dataset_ref=run.get('defaultDatasetId'),
            error_message=run.get('statusMessage') or None,
        )
