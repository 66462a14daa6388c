"""
Persisted mirror of one Apify run.

Rows are created by whoever launches the run (status 'pending'); the monitor
only updates them.
"""
import uuid

from sqlalchemy import Column, Text, Integer, BigInteger, DateTime, JSON
from sqlalchemy.sql import func

from scrapesync.database import Base


class DbRun(Base):
    __tablename__ = 'runs'

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    external_job_id = Column(Text, nullable=False, unique=True, index=True)  # Apify run id
    actor_ref = Column(Text, nullable=False, default='')
    producer_kind = Column(Text, nullable=True)      # telegram / instagram / facebook / generic
    status = Column(Text, nullable=False, default='pending', index=True)
    items_count = Column(Integer, nullable=False, default=0)
    duration_ms = Column(BigInteger, default=0)
    dataset_ref = Column(Text, nullable=True)
    input_config = Column(JSON, default=dict)
    error_message = Column(Text, nullable=True)
    resurrect_count = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'run_id': self.external_job_id,
            'actor_ref': self.actor_ref,
            'producer_kind': self.producer_kind,
            'status': self.status,
            'items_count': self.items_count,
            'duration_ms': self.duration_ms,
            'dataset_ref': self.dataset_ref,
            'error_message': self.error_message,
            'resurrect_count': self.resurrect_count,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
        }
