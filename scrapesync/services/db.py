"""
Store access for runs and canonical records, one short-lived session per helper.

Run helpers hand back detached DbRun snapshots; callers never hold a session.
Store errors are rolled back, logged and re-raised so the monitor can record
them against the run being processed.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import select, update, func, or_, and_, case, distinct

from scrapesync.config import MAX_RESURRECT_ATTEMPTS
from scrapesync.database import get_session
from scrapesync.models.db_run import DbRun
from scrapesync.models.db_record import DbRecord
from scrapesync.monitor.status import (
    ACTIVE_STATUSES, INTERNAL_STATUSES, RECOVERABLE_STATUSES, SUCCEEDED, RUNNING,
)

logger = logging.getLogger('services.db')


def _now():
    return datetime.now(timezone.utc)


# ── Runs ──────────────────────────────────────────────────────────────────────

def load_runs_needing_attention():
    """
    Runs a tick must look at, oldest first.

    Active runs (pending/running), failed/timed-out runs that still have
    resurrect budget (a resurrect that errored is retried), and succeeded runs
    whose data never landed (items_count == 0), which the tick re-reconciles.
    """
    session = get_session()
    try:
        return list(session.execute(
            select(DbRun)
            .where(or_(
                DbRun.status.in_(ACTIVE_STATUSES),
                and_(DbRun.status.in_(sorted(RECOVERABLE_STATUSES)),
                     DbRun.resurrect_count < MAX_RESURRECT_ATTEMPTS),
                and_(DbRun.status == SUCCEEDED, DbRun.items_count == 0),
            ))
            .order_by(DbRun.created_at.asc(), DbRun.id.asc())
        ).scalars())
    finally:
        session.close()


def get_run_by_job_id(external_job_id):
    session = get_session()
    try:
        return session.execute(
            select(DbRun).where(DbRun.external_job_id == external_job_id)
        ).scalar_one_or_none()
    finally:
        session.close()


def apply_status_update(run_id, **fields):
    """
    Write changed run fields and return the refreshed run.

    Only keys that differ from the stored values are written; an empty delta
    is a no-op read.
    """
    session = get_session()
    try:
        db_run = session.get(DbRun, run_id)
        if db_run is None:
            raise LookupError(f"Run {run_id} disappeared from the store")

        changed = {k: v for k, v in fields.items() if getattr(db_run, k) != v}
        for key, value in changed.items():
            setattr(db_run, key, value)
        if changed:
            session.commit()
            session.refresh(db_run)
        return db_run
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def set_items_count(run_id, items_count):
    session = get_session()
    try:
        session.execute(update(DbRun).where(DbRun.id == run_id).values(items_count=items_count))
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def mark_resurrected(run_id, new_external_id=None):
    """
    Flip a recovered run back to running and spend one resurrect attempt.

    The UPDATE is conditional on resurrect_count still being below the cap, so
    two concurrent recoveries can never push it past MAX_RESURRECT_ATTEMPTS.
    Returns False when the guard rejected the write.
    """
    values = {
        'status': RUNNING,
        'error_message': None,
        'finished_at': None,
        'resurrect_count': DbRun.resurrect_count + 1,
    }
    if new_external_id:
        values['external_job_id'] = new_external_id

    session = get_session()
    try:
        result = session.execute(
            update(DbRun)
            .where(DbRun.id == run_id, DbRun.resurrect_count < MAX_RESURRECT_ATTEMPTS)
            .values(**values)
        )
        session.commit()
        return result.rowcount == 1
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def reset_resurrect_count(external_job_id):
    """Operator reset of the resurrect budget. False when the run is unknown."""
    session = get_session()
    try:
        result = session.execute(
            update(DbRun)
            .where(DbRun.external_job_id == external_job_id)
            .values(resurrect_count=0)
        )
        session.commit()
        if result.rowcount:
            logger.info("Resurrect budget reset for run %s", external_job_id)
        return result.rowcount == 1
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def mark_aborted(run_id, status):
    """Persist a manual abort."""
    return apply_status_update(
        run_id,
        status=status,
        finished_at=_now(),
        error_message='Manually aborted by user',
    )


def runs_summary():
    """Run counts per internal status, plus total."""
    session = get_session()
    try:
        rows = session.execute(
            select(DbRun.status, func.count(DbRun.id)).group_by(DbRun.status)
        ).all()
    finally:
        session.close()

    summary = {status: 0 for status in INTERNAL_STATUSES}
    total = 0
    for status, count in rows:
        total += count
        if status in summary:
            summary[status] = count
    summary['total'] = total
    return summary


# ── Canonical records ─────────────────────────────────────────────────────────

def get_source_stats(producer_kind):
    """
    Per-source aggregates for one producer kind, busiest source first.

    Returns {'sources': [...], 'totals': {...}}.
    """
    def _count_true(column):
        return func.sum(case((column.is_(True), 1), else_=0))

    session = get_session()
    try:
        rows = session.execute(
            select(
                DbRecord.source_identifier,
                func.count(DbRecord.id),
                _count_true(DbRecord.is_premium),
                _count_true(DbRecord.is_verified),
                _count_true(DbRecord.is_bot),
                _count_true(DbRecord.is_suspicious),
                func.max(DbRecord.updated_at),
            )
            .where(DbRecord.producer_kind == producer_kind)
            .group_by(DbRecord.source_identifier)
            .order_by(func.count(DbRecord.id).desc(), DbRecord.source_identifier)
        ).all()
    finally:
        session.close()

    sources = []
    for source, total, premium, verified, bots, suspicious, last_scraped in rows:
        sources.append({
            'source_identifier': source,
            'total_records': total,
            'premium_count': int(premium or 0),
            'verified_count': int(verified or 0),
            'bot_count': int(bots or 0),
            'suspicious_count': int(suspicious or 0),
            'last_scraped_at': last_scraped.isoformat() if last_scraped else None,
        })

    totals = {
        'sources': len(sources),
        'records': sum(s['total_records'] for s in sources),
        'premium': sum(s['premium_count'] for s in sources),
        'verified': sum(s['verified_count'] for s in sources),
    }
    return {'producer_kind': producer_kind, 'sources': sources, 'totals': totals}


def find_cross_source_duplicates(producer_kind=None, limit=500):
    """
    Entities seen under more than one source of the same producer kind.

    Each entry: producer_kind, entity_id, occurrence count and the sources.
    """
    session = get_session()
    try:
        query = (
            select(
                DbRecord.producer_kind,
                DbRecord.entity_id,
                func.count(distinct(DbRecord.source_identifier)).label('occurrences'),
            )
            .group_by(DbRecord.producer_kind, DbRecord.entity_id)
            .having(func.count(distinct(DbRecord.source_identifier)) > 1)
            .order_by(func.count(distinct(DbRecord.source_identifier)).desc(), DbRecord.entity_id)
            .limit(limit)
        )
        if producer_kind:
            query = query.where(DbRecord.producer_kind == producer_kind)
        groups = session.execute(query).all()

        duplicates = []
        for kind, entity_id, occurrences in groups:
            sources = session.execute(
                select(DbRecord.source_identifier)
                .where(DbRecord.producer_kind == kind, DbRecord.entity_id == entity_id)
                .order_by(DbRecord.source_identifier)
            ).scalars().all()
            duplicates.append({
                'producer_kind': kind,
                'entity_id': entity_id,
                'occurrences': occurrences,
                'sources': sources,
            })
        return duplicates
    finally:
        session.close()
