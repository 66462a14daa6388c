"""Create runs and canonical_records

Revision ID: 3f9a1c6d2e80
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a1c6d2e80'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('runs',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('external_job_id', sa.Text(), nullable=False),
        sa.Column('actor_ref', sa.Text(), nullable=False, server_default=''),
        sa.Column('producer_kind', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False, server_default='pending'),
        sa.Column('items_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('duration_ms', sa.BigInteger(), nullable=True),
        sa.Column('dataset_ref', sa.Text(), nullable=True),
        sa.Column('input_config', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('resurrect_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_runs_external_job_id', 'runs', ['external_job_id'], unique=True)
    op.create_index('ix_runs_status', 'runs', ['status'])

    op.create_table('canonical_records',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('producer_kind', sa.Text(), nullable=False),
        sa.Column('source_identifier', sa.Text(), nullable=False),
        sa.Column('entity_id', sa.Text(), nullable=False),
        sa.Column('run_id', sa.Text(), nullable=True),
        sa.Column('actor_ref', sa.Text(), nullable=True),
        sa.Column('source_name', sa.Text(), nullable=True),
        sa.Column('entity_type', sa.Text(), nullable=True),
        sa.Column('entity_name', sa.Text(), nullable=True),
        sa.Column('display_name', sa.Text(), nullable=True),
        sa.Column('username', sa.Text(), nullable=True),
        sa.Column('profile_url', sa.Text(), nullable=True),
        sa.Column('is_verified', sa.Boolean(), nullable=True),
        sa.Column('is_premium', sa.Boolean(), nullable=True),
        sa.Column('is_bot', sa.Boolean(), nullable=True),
        sa.Column('is_suspicious', sa.Boolean(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('raw_payload', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('producer_kind', 'source_identifier', 'entity_id', name='uq_canonical_identity'),
    )
    op.create_index('ix_canonical_records_source', 'canonical_records', ['producer_kind', 'source_identifier'])
    op.create_index('ix_canonical_records_entity', 'canonical_records', ['producer_kind', 'entity_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_canonical_records_entity', table_name='canonical_records')
    op.drop_index('ix_canonical_records_source', table_name='canonical_records')
    op.drop_table('canonical_records')
    op.drop_index('ix_runs_status', table_name='runs')
    op.drop_index('ix_runs_external_job_id', table_name='runs')
    op.drop_table('runs')
