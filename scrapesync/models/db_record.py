"""
Canonical record — one row per entity per source, deduplicated by
(producer_kind, source_identifier, entity_id).
"""
import uuid

from sqlalchemy import Column, Text, Boolean, DateTime, JSON, UniqueConstraint, Index
from sqlalchemy.sql import func

from scrapesync.database import Base


class DbRecord(Base):
    __tablename__ = 'canonical_records'

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    producer_kind = Column(Text, nullable=False)
    source_identifier = Column(Text, nullable=False)   # group name / account list / group URL
    entity_id = Column(Text, nullable=False)           # platform user id, digits only
    run_id = Column(Text, nullable=True)               # internal id of the run that last saw it
    actor_ref = Column(Text, nullable=True)
    source_name = Column(Text, nullable=True)
    entity_type = Column(Text, default='member')
    entity_name = Column(Text, nullable=True)
    display_name = Column(Text, nullable=True)
    username = Column(Text, nullable=True)
    profile_url = Column(Text, nullable=True)
    is_verified = Column(Boolean, default=False)
    is_premium = Column(Boolean, default=False)
    is_bot = Column(Boolean, default=False)
    is_suspicious = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    raw_payload = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('producer_kind', 'source_identifier', 'entity_id', name='uq_canonical_identity'),
        Index('ix_canonical_records_source', 'producer_kind', 'source_identifier'),
        Index('ix_canonical_records_entity', 'producer_kind', 'entity_id'),
    )
