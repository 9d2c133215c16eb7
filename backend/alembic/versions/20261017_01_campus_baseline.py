"""campus content, participation and notification baseline"""

from alembic import op
import sqlalchemy as sa
from typing import Sequence, Union

revision: str = '20261017_01'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _moderation_columns() -> list[sa.Column]:
    return [
        sa.Column('approval', sa.String(), nullable=False, server_default='pending'),
        sa.Column('visibility', sa.String(), nullable=False, server_default='visible'),
        sa.Column('report_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('moderated_at', sa.DateTime(), nullable=True),
        sa.Column('approved_by_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('moderated_by_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('department', sa.String(), nullable=True),
        sa.Column('course', sa.String(), nullable=True),
        sa.Column('joined_event_ids', sa.JSON(), nullable=False),
        sa.Column('last_digest', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('approval', sa.String(), nullable=False, server_default='approved'),
        sa.Column('visibility', sa.String(), nullable=False, server_default='visible'),
        sa.Column('report_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('moderated_at', sa.DateTime(), nullable=True),
        sa.Column('approved_by_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('moderated_by_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
    )

    op.create_table(
        'events',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('category', sa.String(), nullable=False),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column('time', sa.String(), nullable=False),
        sa.Column('location', sa.String(), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False, server_default='50'),
        sa.Column('participant_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(), nullable=False, server_default='upcoming'),
        sa.Column('reminder_sent_at', sa.DateTime(), nullable=True),
        sa.Column('organizer_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('owner_department', sa.String(), nullable=True),
        sa.Column('image_url', sa.String(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        *_moderation_columns(),
        sa.CheckConstraint('participant_count >= 0', name='ck_events_participant_count_positive'),
        sa.CheckConstraint('participant_count <= capacity', name='ck_events_participant_count_capacity'),
    )
    op.create_index('ix_events_organizer_id', 'events', ['organizer_id'])
    op.create_index('ix_events_owner_department', 'events', ['owner_department'])
    op.create_index('ix_events_approval', 'events', ['approval'])

    op.create_table(
        'event_participants',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('event_id', sa.UUID(as_uuid=True), sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('joined_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('event_id', 'user_id', name='uq_event_participants_event_user'),
    )
    op.create_index('ix_event_participants_event_id', 'event_participants', ['event_id'])
    op.create_index('ix_event_participants_user_id', 'event_participants', ['user_id'])

    op.create_table(
        'forum_posts',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('category', sa.String(), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('author_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('owner_department', sa.String(), nullable=True),
        sa.Column('is_pinned', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_locked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        *_moderation_columns(),
    )
    op.create_index('ix_forum_posts_author_id', 'forum_posts', ['author_id'])
    op.create_index('ix_forum_posts_owner_department', 'forum_posts', ['owner_department'])
    op.create_index('ix_forum_posts_approval', 'forum_posts', ['approval'])

    op.create_table(
        'forum_replies',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('post_id', sa.UUID(as_uuid=True), sa.ForeignKey('forum_posts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('author_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_forum_replies_post_id', 'forum_replies', ['post_id'])

    op.create_table(
        'post_likes',
        sa.Column('post_id', sa.UUID(as_uuid=True), sa.ForeignKey('forum_posts.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('user_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'resources',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('category', sa.String(), nullable=False),
        sa.Column('subject', sa.String(), nullable=False),
        sa.Column('department', sa.String(), nullable=False),
        sa.Column('semester', sa.Integer(), nullable=True),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('uploader_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('owner_department', sa.String(), nullable=True),
        sa.Column('file_url', sa.String(), nullable=False),
        sa.Column('file_name', sa.String(), nullable=False),
        sa.Column('file_type', sa.String(), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        *_moderation_columns(),
    )
    op.create_index('ix_resources_uploader_id', 'resources', ['uploader_id'])
    op.create_index('ix_resources_owner_department', 'resources', ['owner_department'])
    op.create_index('ix_resources_approval', 'resources', ['approval'])

    op.create_table(
        'resource_bookmarks',
        sa.Column('resource_id', sa.UUID(as_uuid=True), sa.ForeignKey('resources.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('user_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'notifications',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('recipient_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sender_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('message', sa.String(), nullable=False),
        sa.Column('related_kind', sa.String(), nullable=True),
        sa.Column('related_id', sa.UUID(as_uuid=True), nullable=True),
        sa.Column('priority', sa.String(), nullable=False, server_default='medium'),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('is_email_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email_sent_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_notifications_recipient_read', 'notifications', ['recipient_id', 'is_read'])
    op.create_index('ix_notifications_type', 'notifications', ['type'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('actor_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('target_type', sa.String(), nullable=True),
        sa.Column('target_id', sa.UUID(as_uuid=True), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_index('ix_notifications_created_at', table_name='notifications')
    op.drop_index('ix_notifications_type', table_name='notifications')
    op.drop_index('ix_notifications_recipient_read', table_name='notifications')
    op.drop_table('notifications')
    op.drop_table('resource_bookmarks')
    op.drop_table('resources')
    op.drop_table('post_likes')
    op.drop_table('forum_replies')
    op.drop_table('forum_posts')
    op.drop_table('event_participants')
    op.drop_table('events')
    op.drop_table('users')
