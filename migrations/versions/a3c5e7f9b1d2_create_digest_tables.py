"""Create digest run and delivery tables

Revision ID: a3c5e7f9b1d2
Revises:
Create Date: 2025-10-06

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a3c5e7f9b1d2'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create digest_runs table
    op.create_table(
        'digest_runs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('as_of_date', sa.String(10), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(9), nullable=False),
        sa.Column('article_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('item_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('dropped_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('changes_summary', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_digest_runs_started_at', 'digest_runs', ['started_at'], unique=False)
    op.create_index('ix_digest_runs_status', 'digest_runs', ['status'], unique=False)

    # Create delivery_batches table
    op.create_table(
        'delivery_batches',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('as_of_date', sa.String(10), nullable=False),
        sa.Column('provider', sa.String(20), nullable=True),
        sa.Column('recipient_emails', sa.JSON(), nullable=False),
        sa.Column('item_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('subject_line', sa.String(500), nullable=False),
        sa.Column('status', sa.String(7), nullable=False),
        sa.Column('webhook_forwarded', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_delivery_batches_received_at', 'delivery_batches', ['received_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_delivery_batches_received_at', table_name='delivery_batches')
    op.drop_table('delivery_batches')
    op.drop_index('ix_digest_runs_status', table_name='digest_runs')
    op.drop_index('ix_digest_runs_started_at', table_name='digest_runs')
    op.drop_table('digest_runs')
