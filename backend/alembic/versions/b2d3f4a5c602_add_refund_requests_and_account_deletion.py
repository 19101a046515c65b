"""add refund_requests and account deletion fields

Revision ID: b2d3f4a5c602
Revises: a1c2e3f4b501
Create Date: 2026-10-20 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = 'b2d3f4a5c602'
down_revision: Union[str, None] = 'a1c2e3f4b501'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'refund_requests',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=True, comment='対象請求書 (任意)'),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('reason', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column(
            'status',
            sa.Enum('pending', 'approved', 'rejected', 'processed', name='refund_request_status'),
            nullable=False,
        ),
        sa.Column('admin_id', sa.String(36), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_refund_requests_user_id', 'refund_requests', ['user_id'])
    op.create_index('ix_refund_requests_status', 'refund_requests', ['status'])

    with op.batch_alter_table('profiles') as batch_op:
        batch_op.add_column(sa.Column('deleted_by', sa.String(36), nullable=True, comment='削除実行者 (本人または管理者)'))
        batch_op.add_column(sa.Column('deletion_reason', sa.String(500), nullable=True))
        batch_op.add_column(sa.Column('scheduled_deletion_at', sa.DateTime(), nullable=True, comment='完全削除予定日時'))


def downgrade() -> None:
    with op.batch_alter_table('profiles') as batch_op:
        batch_op.drop_column('scheduled_deletion_at')
        batch_op.drop_column('deletion_reason')
        batch_op.drop_column('deleted_by')
    op.drop_table('refund_requests')
