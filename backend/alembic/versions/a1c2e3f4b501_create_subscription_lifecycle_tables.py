"""create subscription lifecycle tables

Revision ID: a1c2e3f4b501
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = 'a1c2e3f4b501'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TIER_ENUM = ('free', 'tier_1', 'tier_2')


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(36), primary_key=True, comment='IdPのユーザーID'),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('brand_logo_url', sa.String(1000), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True, comment='論理削除日時'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_profiles_email', 'profiles', ['email'])

    op.create_table(
        'user_roles',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('role', sa.Enum('admin', 'user', name='app_role'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'role', name='uq_user_roles_user_id_role'),
    )
    op.create_index('ix_user_roles_user_id', 'user_roles', ['user_id'])

    op.create_table(
        'user_subscriptions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('tier', sa.Enum(*TIER_ENUM, name='subscription_tier'), nullable=False),
        sa.Column('status', sa.Enum('active', 'trial', 'cancelled', 'expired', name='subscription_status'), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True, comment='トライアル/有料期間の終了日時'),
        sa.Column('previous_tier', sa.Enum(*TIER_ENUM, name='subscription_previous_tier'), nullable=True, comment='ダウングレード直前のTier'),
        sa.Column('downgrade_date', sa.DateTime(), nullable=True, comment='ダウングレード日時'),
        sa.Column('grace_period_end', sa.DateTime(), nullable=True, comment='画像削除対象になる日時'),
        sa.Column('is_read_only', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('stripe_subscription_id', sa.String(255), nullable=True),
        sa.Column('stripe_customer_id', sa.String(255), nullable=True),
        sa.Column('billing_period', sa.Enum('monthly', 'annual', name='billing_period'), nullable=True),
        sa.Column('next_billing_date', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('stripe_subscription_id'),
    )
    op.create_index('ix_user_subscriptions_user_id', 'user_subscriptions', ['user_id'], unique=True)
    op.create_index('ix_user_subscriptions_grace_period_end', 'user_subscriptions', ['grace_period_end'])

    op.create_table(
        'subscription_changes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('admin_id', sa.String(36), nullable=True, comment='操作者 (本人操作・自動処理はNULL)'),
        sa.Column('previous_tier', sa.Enum(*TIER_ENUM, name='change_previous_tier'), nullable=True),
        sa.Column('new_tier', sa.Enum(*TIER_ENUM, name='change_new_tier'), nullable=False),
        sa.Column(
            'change_type',
            sa.Enum('upgrade', 'downgrade', 'cancel', 'refund', 'trial_expired', 'same', name='subscription_change_type'),
            nullable=False,
        ),
        sa.Column('reason', sa.String(500), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_subscription_changes_user_id', 'subscription_changes', ['user_id'])
    op.create_index('ix_subscription_changes_created_at', 'subscription_changes', ['created_at'])

    op.create_table(
        'projects',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('image_url', sa.String(1000), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_projects_user_id', 'projects', ['user_id'])

    op.create_table(
        'catalog_projects',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(36), nullable=False, comment='カタログ所有者'),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('image_url', sa.String(1000), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_catalog_projects_user_id', 'catalog_projects', ['user_id'])

    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('invoice_number', sa.String(64), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False, comment='返金は負数'),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('status', sa.Enum('pending', 'paid', 'refunded', 'cancelled', name='invoice_status'), nullable=False),
        sa.Column('tier', sa.Enum(*TIER_ENUM, name='invoice_tier'), nullable=True),
        sa.Column('issued_date', sa.DateTime(), nullable=True),
        sa.Column('paid_date', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('invoice_number'),
    )
    op.create_index('ix_invoices_user_id', 'invoices', ['user_id'])

    op.create_table(
        'grace_period_notifications',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('milestone', sa.Integer(), nullable=False, comment='残り日数 (30/7/1)'),
        sa.Column('grace_period_end', sa.DateTime(), nullable=False),
        sa.Column('sent_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'milestone', 'grace_period_end', name='uq_grace_notice_user_milestone'),
    )
    op.create_index('ix_grace_period_notifications_user_id', 'grace_period_notifications', ['user_id'])


def downgrade() -> None:
    op.drop_table('grace_period_notifications')
    op.drop_table('invoices')
    op.drop_table('catalog_projects')
    op.drop_table('projects')
    op.drop_table('subscription_changes')
    op.drop_table('user_subscriptions')
    op.drop_table('user_roles')
    op.drop_table('profiles')
