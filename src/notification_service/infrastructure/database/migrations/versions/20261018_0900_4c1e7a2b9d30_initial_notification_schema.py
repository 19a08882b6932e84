"""Initial notification schema

Revision ID: 4c1e7a2b9d30
Revises:
Create Date: 2026-10-18 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4c1e7a2b9d30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SUBSCRIPTION_STATUSES = ('active', 'notified', 'cancelled')
JOB_TYPES = ('first_notification', 'thankyou_notification', 'reminder_email', 'reminder_sms')
JOB_STATUSES = ('pending', 'processing', 'completed', 'failed', 'cancelled')


def upgrade() -> None:
    # Create subscriptions table
    op.create_table('subscriptions',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('email', sa.String(length=320), nullable=False),
    sa.Column('phone', sa.String(length=50), nullable=True),
    sa.Column('product_id', sa.String(length=255), nullable=False),
    sa.Column('product_title', sa.String(length=500), nullable=True),
    sa.Column('product_url', sa.String(length=2048), nullable=True),
    sa.Column('shop_id', sa.String(length=255), nullable=False),
    sa.Column('status', sa.Enum(*SUBSCRIPTION_STATUSES, name='subscriptionstatus', native_enum=False, length=32), nullable=False),
    sa.Column('subscribed_at', sa.DateTime(), nullable=False),
    sa.Column('reactivated_at', sa.DateTime(), nullable=True),
    sa.Column('reactivation_count', sa.Integer(), nullable=False),
    sa.Column('notified_at', sa.DateTime(), nullable=True),
    sa.Column('purchase_detected_at', sa.DateTime(), nullable=True),
    sa.Column('reminder_count', sa.Integer(), nullable=False),
    sa.Column('last_reminder_at', sa.DateTime(), nullable=True),
    sa.Column('source', sa.String(length=50), nullable=True),
    sa.Column('user_agent', sa.String(length=1024), nullable=True),
    sa.Column('ip_address', sa.String(length=64), nullable=True),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('email', 'product_id', 'shop_id', name='uq_subscriptions_email_product_shop')
    )
    op.create_index('ix_subscriptions_product_shop_status', 'subscriptions', ['product_id', 'shop_id', 'status'], unique=False)

    # Create notification_queue table
    op.create_table('notification_queue',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('subscription_id', sa.Integer(), nullable=False),
    sa.Column('type', sa.Enum(*JOB_TYPES, name='queuejobtype', native_enum=False, length=32), nullable=False),
    sa.Column('scheduled_for', sa.DateTime(), nullable=False),
    sa.Column('status', sa.Enum(*JOB_STATUSES, name='queuejobstatus', native_enum=False, length=32), nullable=False),
    sa.Column('attempts', sa.Integer(), nullable=False),
    sa.Column('max_attempts', sa.Integer(), nullable=False),
    sa.Column('data', sa.Text(), nullable=False),
    sa.Column('error_message', sa.Text(), nullable=True),
    sa.Column('processed_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_notification_queue_due', 'notification_queue', ['status', 'scheduled_for'], unique=False)
    op.create_index('ix_notification_queue_processed', 'notification_queue', ['status', 'processed_at'], unique=False)
    op.create_index(op.f('ix_notification_queue_subscription_id'), 'notification_queue', ['subscription_id'], unique=False)

    # Create notification_logs table
    op.create_table('notification_logs',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('subscription_id', sa.Integer(), nullable=False),
    sa.Column('type', sa.String(length=50), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('subject', sa.String(length=255), nullable=False),
    sa.Column('content', sa.Text(), nullable=True),
    sa.Column('recipient', sa.String(length=320), nullable=False),
    sa.Column('sent_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_notification_logs_subscription_id'), 'notification_logs', ['subscription_id'], unique=False)

    # Create shop_notification_settings table (written by the admin app)
    op.create_table('shop_notification_settings',
    sa.Column('shop_id', sa.String(length=255), nullable=False),
    sa.Column('auto_notification_enabled', sa.Boolean(), nullable=True),
    sa.Column('first_email_enabled', sa.Boolean(), nullable=True),
    sa.Column('reminder_email_enabled', sa.Boolean(), nullable=True),
    sa.Column('reminder_sms_enabled', sa.Boolean(), nullable=True),
    sa.Column('reminder_delay_hours', sa.Float(), nullable=True),
    sa.Column('reminder_max_count', sa.Integer(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    sa.PrimaryKeyConstraint('shop_id')
    )


def downgrade() -> None:
    op.drop_table('shop_notification_settings')
    op.drop_index(op.f('ix_notification_logs_subscription_id'), table_name='notification_logs')
    op.drop_table('notification_logs')
    op.drop_index(op.f('ix_notification_queue_subscription_id'), table_name='notification_queue')
    op.drop_index('ix_notification_queue_processed', table_name='notification_queue')
    op.drop_index('ix_notification_queue_due', table_name='notification_queue')
    op.drop_table('notification_queue')
    op.drop_index('ix_subscriptions_product_shop_status', table_name='subscriptions')
    op.drop_table('subscriptions')
