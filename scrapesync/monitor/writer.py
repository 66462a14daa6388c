"""
Reconciliation writer — merges CanonicalRecords into canonical_records.

Writes go out as INSERT ... ON CONFLICT (producer_kind, source_identifier,
entity_id) DO UPDATE, so re-ingesting a dataset updates rows in place and
never duplicates them. Batches commit independently; one rejected batch does
not stop the rest.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.sql import func

from scrapesync.config import UPSERT_BATCH_SIZE
from scrapesync.database import get_session, dialect_name
from scrapesync.models.db_record import DbRecord

logger = logging.getLogger('monitor.writer')

IDENTITY_COLUMNS = ('producer_kind', 'source_identifier', 'entity_id')

# Columns refreshed from the latest observation; id and created_at stay as first written
UPDATE_COLUMNS = (
    'run_id', 'actor_ref', 'source_name',
    'entity_type', 'entity_name', 'display_name', 'username', 'profile_url',
    'is_verified', 'is_premium', 'is_bot', 'is_suspicious', 'is_active',
    'raw_payload',
)

_LOOKUP_CHUNK = 500


@dataclass
class WriteResult:
    saved: int = 0
    new_count: int = 0
    updated_count: int = 0
    failed_batches: int = 0
    error: Optional[str] = None


def _dedupe(records):
    """One record per identity, last observation wins, first-seen order kept."""
    latest = {}
    for record in records:
        latest[record.identity] = record
    return list(latest.values())


def _existing_identities(session, records):
    """Identities among `records` that already have a row."""
    by_source = {}
    for record in records:
        by_source.setdefault((record.producer_kind, record.source_identifier), []).append(record.entity_id)

    existing = set()
    for (kind, source), entity_ids in by_source.items():
        for i in range(0, len(entity_ids), _LOOKUP_CHUNK):
            chunk = entity_ids[i:i + _LOOKUP_CHUNK]
            rows = session.execute(
                select(DbRecord.entity_id).where(
                    DbRecord.producer_kind == kind,
                    DbRecord.source_identifier == source,
                    DbRecord.entity_id.in_(chunk),
                )
            ).scalars()
            existing.update((kind, source, entity_id) for entity_id in rows)
    return existing


def _upsert_statement(dialect, rows):
    """Dialect-native multi-row upsert keyed on the canonical identity."""
    if dialect == 'postgresql':
        stmt = pg_insert(DbRecord).values(rows)
    elif dialect == 'sqlite':
        stmt = sqlite_insert(DbRecord).values(rows)
    else:
        raise ValueError(f"Upsert not supported for dialect '{dialect}'")

    set_ = {column: stmt.excluded[column] for column in UPDATE_COLUMNS}
    set_['updated_at'] = func.now()
    return stmt.on_conflict_do_update(index_elements=list(IDENTITY_COLUMNS), set_=set_)


def _to_row(record):
    row = {column: getattr(record, column) for column in IDENTITY_COLUMNS + UPDATE_COLUMNS}
    row['id'] = str(uuid.uuid4())
    return row


def write_records(records: List, batch_size: int = UPSERT_BATCH_SIZE) -> WriteResult:
    """
    Upsert records in batches of `batch_size`.

    new_count/updated_count split on whether the identity existed before the
    write. All three counts only include batches that committed.
    """
    result = WriteResult()
    records = _dedupe(records)
    if not records:
        return result

    session = get_session()
    try:
        try:
            existing = _existing_identities(session, records)
        except Exception as e:
            session.rollback()
            logger.error("Existing-record lookup failed", exc_info=True)
            result.failed_batches = (len(records) + batch_size - 1) // batch_size
            result.error = str(e)
            return result

        dialect = dialect_name(session)
        for start in range(0, len(records), batch_size):
            batch = records[start:start + batch_size]
            try:
                session.execute(_upsert_statement(dialect, [_to_row(r) for r in batch]))
                session.commit()
            except Exception as e:
                session.rollback()
                result.failed_batches += 1
                result.error = str(e)
                logger.error("Upsert batch %d-%d failed", start, start + len(batch), exc_info=True)
                continue

            updated = sum(1 for r in batch if r.identity in existing)
            result.saved += len(batch)
            result.updated_count += updated
            result.new_count += len(batch) - updated
    finally:
        session.close()

    logger.info("Saved %d records (%d new, %d updated, %d failed batches)",
                result.saved, result.new_count, result.updated_count, result.failed_batches)
    return result
