"""
Run Monitor — tick orchestration over the runs that still need attention.

Each tick walks the selected runs oldest first and, per run, always in this order:

  STATUS CHECK → RECOVERY (failed/timed_out) → COMPLETION → RECONCILIATION

Everything is idempotent: a run whose processing fails half-way is simply
picked up again on the next tick, and re-writing a dataset updates rows in
place. Ticks are serialized through a Redis lock so two schedulers never
process the same run at once.
"""
import logging
import uuid
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from scrapesync.config import TICK_LOCK_TTL, ConfigurationError, check_store_config
from scrapesync.extensions import redis_client, make_platform_client
from scrapesync.monitor.status import (
    translate, is_terminal, RECOVERABLE_STATUSES, SUCCEEDED, FAILED, TIMED_OUT, ABORTED,
)
from scrapesync.monitor.extractors import extract_all, producer_kind_for, source_identifier_for
from scrapesync.monitor.fetcher import fetch_all
from scrapesync.monitor.recovery import attempt_recovery
from scrapesync.monitor.writer import write_records
from scrapesync.services.db import (
    load_runs_needing_attention, get_run_by_job_id, apply_status_update,
    set_items_count, reset_resurrect_count, mark_aborted, runs_summary,
)
from scrapesync.services.notifications import notify_tick_errors

logger = logging.getLogger('monitor.manager')

LOCK_KEY = 'scrapesync:monitor:lock'
RUN_NOT_FOUND = 'run not found'
NO_VALID_ITEMS = 'no valid items'


# ── Lazy RQ queue (avoids import-time Redis connection in the CLI) ─────────

_queue = None

def _get_queue():
    global _queue
    if _queue is None:
        from rq import Queue
        _queue = Queue('monitor', connection=redis_client)
    return _queue


# ── Result types ──────────────────────────────────────────────────────────────

@dataclass
class MonitoredRun:
    """What one tick did to one run."""
    run_id: str
    previous_status: str
    status: str
    items_count: int = 0
    status_changed: bool = False
    completed: bool = False
    resurrected: bool = False
    data_saved: int = 0
    error: Optional[str] = None


@dataclass
class TickResult:
    checked: int = 0
    updated: int = 0
    completed: int = 0
    resurrected: int = 0
    data_saved: int = 0
    runs: List[MonitoredRun] = field(default_factory=list)
    skipped: bool = False
    error: Optional[str] = None

    def to_dict(self):
        return asdict(self)


@dataclass
class SyncResult:
    success: bool = False
    items_count: int = 0
    data_saved: int = 0
    new_count: int = 0
    updated_count: int = 0
    resumed: bool = False
    sample_item: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def to_dict(self):
        return asdict(self)


@dataclass
class AbortResult:
    success: bool = False
    status: Optional[str] = None
    error: Optional[str] = None


# ── Tick lock ─────────────────────────────────────────────────────────────────

def _acquire_tick_lock():
    """
    Take the tick lock. Returns a token, or None when another tick holds it.

    If Redis is unreachable the tick proceeds unlocked.
    """
    token = uuid.uuid4().hex
    try:
        if not redis_client.set(LOCK_KEY, token, nx=True, ex=TICK_LOCK_TTL):
            return None
    except Exception as e:
        logger.warning("Tick lock unavailable (%s), proceeding without it", e)
    return token


def _release_tick_lock(token):
    try:
        if redis_client.get(LOCK_KEY) == token:
            redis_client.delete(LOCK_KEY)
    except Exception:
        logger.debug("Tick lock release failed; it expires in %ds", TICK_LOCK_TTL)


# ── Per-run steps ─────────────────────────────────────────────────────────────

def _refresh_run(run, platform):
    """
    Pull the run's platform state and persist the delta.

    items_count follows the platform while the run is in flight. From the
    moment it succeeds the column belongs to reconciliation: it is 0 until
    data has been written, then the saved count.
    """
    job = platform.get_status(run.external_job_id)
    status = translate(job.status)

    fields = {
        'status': status,
        'producer_kind': run.producer_kind or producer_kind_for(run.actor_ref),
        'duration_ms': job.duration_ms or run.duration_ms or 0,
        'dataset_ref': job.dataset_ref or run.dataset_ref,
        'started_at': job.started_at or run.started_at,
    }
    if is_terminal(job.status):
        fields['finished_at'] = job.finished_at
    if status != SUCCEEDED:
        fields['items_count'] = job.item_count
    elif run.status != SUCCEEDED:
        fields['items_count'] = 0
    if status in (FAILED, TIMED_OUT, ABORTED) and job.error_message:
        fields['error_message'] = job.error_message

    return job, apply_status_update(run.id, **fields)


def _reconcile(run, platform):
    """Fetch → extract → write for a succeeded run. Returns (extraction, write)."""
    if not run.dataset_ref:
        raise LookupError(f"Run {run.external_job_id} has no dataset")

    kind = run.producer_kind or producer_kind_for(run.actor_ref)
    source = source_identifier_for(run.input_config, kind)

    items = fetch_all(platform, run.dataset_ref)
    extraction = extract_all(items, kind, source, run=run)
    write = write_records(extraction.records)

    if write.saved != run.items_count:
        set_items_count(run.id, write.saved)
    run.items_count = write.saved

    logger.info("Run %s reconciled: %d items, %d valid, %d saved",
                run.external_job_id, extraction.total, extraction.valid, write.saved,
                extra={'run_id': run.external_job_id})
    return extraction, write


def _process_run(run, platform, auto_save_on_complete, auto_resurrect):
    monitored = MonitoredRun(
        run_id=run.external_job_id,
        previous_status=run.status,
        status=run.status,
        items_count=run.items_count or 0,
    )
    try:
        job, run = _refresh_run(run, platform)
        monitored.status = run.status
        monitored.items_count = run.items_count
        monitored.status_changed = run.status != monitored.previous_status

        if not is_terminal(job.status):
            return monitored

        if run.status in RECOVERABLE_STATUSES and auto_resurrect:
            recovery = attempt_recovery(run, platform)
            if recovery.resumed:
                monitored.resurrected = True
                monitored.status = run.status
                return monitored

        monitored.completed = True
        if run.status == SUCCEEDED and auto_save_on_complete:
            _, write = _reconcile(run, platform)
            monitored.data_saved = write.saved
            monitored.items_count = write.saved
            if write.error:
                monitored.error = f"store write rejected: {write.error}"

    except Exception as e:
        logger.error("Monitoring failed for run %s", run.external_job_id, exc_info=True,
                     extra={'run_id': run.external_job_id})
        monitored.error = str(e)

    return monitored


# ── Public API ────────────────────────────────────────────────────────────────

def run_monitor_tick(platform=None, auto_save_on_complete=True, auto_resurrect=True) -> TickResult:
    """
    One monitor pass over every run needing attention.

    Per-run failures are recorded on that run's MonitoredRun and never stop
    the loop. Returns skipped=True without touching anything when another
    tick holds the lock.
    """
    result = TickResult()

    token = _acquire_tick_lock()
    if token is None:
        logger.info("Monitor tick skipped, another tick is in progress")
        result.skipped = True
        return result

    try:
        check_store_config()
        if platform is None:
            platform = make_platform_client()

        for run in load_runs_needing_attention():
            monitored = _process_run(run, platform, auto_save_on_complete, auto_resurrect)
            result.runs.append(monitored)
            result.checked += 1
            result.updated += int(monitored.status_changed)
            result.completed += int(monitored.completed)
            result.resurrected += int(monitored.resurrected)
            result.data_saved += monitored.data_saved

    except Exception as e:
        logger.error("Monitor tick aborted", exc_info=True)
        result.error = str(e)
    finally:
        _release_tick_lock(token)

    logger.info("Monitor tick: checked=%d updated=%d completed=%d resurrected=%d saved=%d",
                result.checked, result.updated, result.completed,
                result.resurrected, result.data_saved)
    notify_tick_errors(result)
    return result


def sync_one_run(external_job_id, platform=None, auto_resurrect=True) -> SyncResult:
    """
    Full status → recovery → fetch → extract → write sequence for one run.

    Unlike the tick, data is always re-written for a succeeded run, so this is
    the manual repair path. Failures come back as a named reason in `error`.
    """
    try:
        check_store_config()
    except ConfigurationError as e:
        return SyncResult(error=str(e))

    run = get_run_by_job_id(external_job_id)
    if run is None:
        return SyncResult(error=RUN_NOT_FOUND)

    try:
        if platform is None:
            platform = make_platform_client()

        job, run = _refresh_run(run, platform)

        if is_terminal(job.status) and run.status in RECOVERABLE_STATUSES:
            if not auto_resurrect:
                return SyncResult(items_count=run.items_count, error=f"run {run.status}")
            recovery = attempt_recovery(run, platform)
            if recovery.resumed:
                return SyncResult(success=True, resumed=True, items_count=run.items_count)
            return SyncResult(items_count=run.items_count, error=recovery.reason)

        if run.status != SUCCEEDED:
            return SyncResult(items_count=run.items_count,
                              error=f"run is {run.status}, data syncs once it succeeds")

        extraction, write = _reconcile(run, platform)

    except Exception as e:
        logger.error("Sync failed for run %s", external_job_id, exc_info=True,
                     extra={'run_id': external_job_id})
        return SyncResult(error=str(e))

    if extraction.total and not extraction.records:
        return SyncResult(items_count=extraction.total, error=NO_VALID_ITEMS)

    result = SyncResult(
        success=write.error is None,
        items_count=extraction.total,
        data_saved=write.saved,
        new_count=write.new_count,
        updated_count=write.updated_count,
        sample_item=extraction.records[0].to_row() if extraction.records else None,
    )
    if write.error:
        result.error = f"store write rejected: {write.error}"
    return result


def check_run_status(external_job_id, platform=None) -> Optional[MonitoredRun]:
    """Status-only refresh of one run; no recovery, no data. None for unknown runs."""
    run = get_run_by_job_id(external_job_id)
    if run is None:
        return None

    if platform is None:
        platform = make_platform_client()

    previous = run.status
    _, run = _refresh_run(run, platform)
    return MonitoredRun(
        run_id=run.external_job_id,
        previous_status=previous,
        status=run.status,
        items_count=run.items_count,
        status_changed=run.status != previous,
    )


def abort_run(external_job_id, platform=None) -> AbortResult:
    """Abort a run on the platform and record the outcome."""
    run = get_run_by_job_id(external_job_id)
    if run is None:
        return AbortResult(error=RUN_NOT_FOUND)

    try:
        if platform is None:
            platform = make_platform_client()
        job = platform.abort(run.external_job_id)
        status = translate(job.status)
        if status == ABORTED:
            mark_aborted(run.id, status)
        else:
            apply_status_update(run.id, status=status)
    except Exception as e:
        logger.error("Abort failed for run %s", external_job_id, exc_info=True)
        return AbortResult(error=str(e))

    logger.info("Run %s aborted by user, status %s", external_job_id, status)
    return AbortResult(success=True, status=status)


def reset_resurrect_budget(external_job_id) -> bool:
    """Give a run its full resurrect budget back. False for unknown runs."""
    return reset_resurrect_count(external_job_id)


def get_runs_summary() -> dict:
    return runs_summary()


# ── Background execution ──────────────────────────────────────────────────────

def enqueue_tick(auto_save_on_complete=True, auto_resurrect=True):
    """Run a tick on an RQ worker. Returns the job id."""
    job = _get_queue().enqueue(
        run_monitor_tick,
        auto_save_on_complete=auto_save_on_complete,
        auto_resurrect=auto_resurrect,
        job_timeout=TICK_LOCK_TTL,
    )
    return job.id


def enqueue_sync(external_job_id):
    """Run sync_one_run on an RQ worker. Returns the job id."""
    job = _get_queue().enqueue(sync_one_run, external_job_id, job_timeout=TICK_LOCK_TTL)
    return job.id
