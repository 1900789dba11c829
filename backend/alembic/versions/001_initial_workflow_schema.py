"""Create proposal workflow schema: users, proposals, audit logs, notifications

Revision ID: 001_initial_workflow_schema
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial_workflow_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


user_role = sa.Enum('head_admin', 'admin', 'reviewer', 'student', 'partner', name='user_role_enum')
proposal_status = sa.Enum('draft', 'pending', 'approved', 'denied', 'revision_requested', name='proposal_status_enum')
report_status = sa.Enum('draft', 'pending', 'approved', 'denied', 'not_applicable', name='report_status_enum')
event_status = sa.Enum('scheduled', 'ongoing', 'completed', 'cancelled', 'postponed', name='event_status_enum')
audit_action_type = sa.Enum(
    'CREATE', 'UPDATE', 'DELETE', 'APPROVE', 'REJECT', 'LOGIN', 'LOGOUT', 'VIEW', 'EXPORT',
    name='audit_action_type_enum',
)
notification_priority = sa.Enum('low', 'normal', 'high', 'urgent', name='notification_priority_enum')
notification_status = sa.Enum('pending', 'delivered', 'read', 'archived', 'expired', name='notification_status_enum')


def upgrade() -> None:
    """Create all workflow tables."""

    # 1. Users
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('role', user_role, nullable=False, server_default='student'),
        sa.Column('is_approved', sa.Boolean(), server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_is_approved', 'users', ['is_approved'])

    # 2. Proposals
    op.create_table(
        'proposals',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('uuid', sa.String(36), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('organization_name', sa.String(255), nullable=True),
        sa.Column('contact_person', sa.String(255), nullable=True),
        sa.Column('contact_email', sa.String(255), nullable=True),
        sa.Column('event_name', sa.String(255), nullable=True),
        sa.Column('proposal_status', proposal_status, nullable=False, server_default='draft'),
        sa.Column('report_status', report_status, nullable=False, server_default='draft'),
        sa.Column('event_status', event_status, nullable=False, server_default='scheduled'),
        sa.Column('admin_comments', sa.Text(), nullable=True),
        sa.Column('reviewed_by_admin_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_proposals_uuid', 'proposals', ['uuid'], unique=True)
    op.create_index('ix_proposals_user_id', 'proposals', ['user_id'])
    op.create_index('ix_proposals_proposal_status', 'proposals', ['proposal_status'])

    # 3. Audit logs
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('action_type', audit_action_type, nullable=False),
        sa.Column('table_name', sa.String(50), nullable=False),
        sa.Column('record_id', sa.BigInteger(), nullable=True),
        sa.Column('old_values', sa.JSON(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('additional_info', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_action_type', 'audit_logs', ['action_type'])
    op.create_index('ix_audit_logs_table_record', 'audit_logs', ['table_name', 'record_id'])

    # 4. Notifications
    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('uuid', sa.String(36), nullable=False, unique=True),
        sa.Column('recipient_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sender_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('notification_type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('priority', notification_priority, nullable=False, server_default='normal'),
        sa.Column('status', notification_status, nullable=False, server_default='pending'),
        sa.Column('related_proposal_id', sa.Integer(), sa.ForeignKey('proposals.id', ondelete='SET NULL'), nullable=True),
        sa.Column('related_proposal_uuid', sa.String(36), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_notifications_recipient_id', 'notifications', ['recipient_id'])
    op.create_index('ix_notifications_expires_at', 'notifications', ['expires_at'])
    op.create_index('idx_notifications_recipient_status', 'notifications', ['recipient_id', 'status'])
    op.create_index('idx_notifications_recipient_priority', 'notifications', ['recipient_id', 'priority'])

    # 5. Notification preferences
    op.create_table(
        'notification_preferences',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('notification_type', sa.String(50), nullable=False),
        sa.Column('in_app', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('email', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sms', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('push', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('frequency', sa.String(20), nullable=False, server_default='immediate'),
        sa.Column('quiet_hours_start', sa.Time(), nullable=True),
        sa.Column('quiet_hours_end', sa.Time(), nullable=True),
        sa.Column('timezone', sa.String(50), server_default='UTC'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'notification_type', name='notification_preferences_user_type_unique'),
    )
    op.create_index('ix_notification_preferences_user_id', 'notification_preferences', ['user_id'])

    # 6. Delivery log
    op.create_table(
        'notification_delivery_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('notification_id', sa.Integer(), sa.ForeignKey('notifications.id', ondelete='CASCADE'), nullable=False),
        sa.Column('delivery_channel', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_notification_delivery_logs_notification_id', 'notification_delivery_logs', ['notification_id'])


def downgrade() -> None:
    """Drop all workflow tables and enum types."""
    op.drop_table('notification_delivery_logs')
    op.drop_table('notification_preferences')
    op.drop_table('notifications')
    op.drop_table('audit_logs')
    op.drop_table('proposals')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (
        notification_status,
        notification_priority,
        audit_action_type,
        event_status,
        report_status,
        proposal_status,
        user_role,
    ):
        enum_type.drop(bind, checkfirst=True)
