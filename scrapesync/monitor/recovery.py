"""
Recovery controller — bounded automatic resurrection of failed/timed-out runs.

A run gets at most MAX_RESURRECT_ATTEMPTS resurrects over its lifetime. Once
the budget is spent the run stays failed until an operator resets it.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from scrapesync.config import MAX_RESURRECT_ATTEMPTS
from scrapesync.monitor.status import RECOVERABLE_STATUSES, RUNNING
from scrapesync.services.db import mark_resurrected
from scrapesync.services.notifications import notify_recovery_exhausted

logger = logging.getLogger('monitor.recovery')

NOT_RECOVERABLE = 'run is not in a recoverable state'
BUDGET_EXHAUSTED = 'max resurrect attempts reached'


@dataclass
class RecoveryResult:
    resumed: bool = False
    new_external_id: Optional[str] = None
    reason: Optional[str] = None


def attempt_recovery(run, platform) -> RecoveryResult:
    """
    Resurrect `run` on the platform if its budget allows.

    Never raises for platform errors or an exhausted budget; those come back
    as resumed=False with a reason. On success the passed run is updated in
    place to mirror what was persisted.
    """
    if run.status not in RECOVERABLE_STATUSES:
        return RecoveryResult(reason=NOT_RECOVERABLE)

    if run.resurrect_count >= MAX_RESURRECT_ATTEMPTS:
        logger.warning("Run %s has used %d/%d resurrect attempts, leaving it %s",
                       run.external_job_id, run.resurrect_count, MAX_RESURRECT_ATTEMPTS, run.status)
        notify_recovery_exhausted(run)
        return RecoveryResult(reason=BUDGET_EXHAUSTED)

    try:
        job = platform.resurrect(run.external_job_id)
    except Exception as e:
        logger.warning("Resurrect failed for run %s: %s", run.external_job_id, e)
        return RecoveryResult(reason=str(e))

    new_id = job.id if job.id and job.id != run.external_job_id else None
    if not mark_resurrected(run.id, new_id):
        # Another worker spent the last attempt between our check and the write
        return RecoveryResult(reason=BUDGET_EXHAUSTED)

    run.status = RUNNING
    run.error_message = None
    run.finished_at = None
    run.resurrect_count += 1
    if new_id:
        run.external_job_id = new_id

    logger.info("Run %s resurrected (attempt %d/%d)",
                run.external_job_id, run.resurrect_count, MAX_RESURRECT_ATTEMPTS)
    return RecoveryResult(resumed=True, new_external_id=run.external_job_id)
