"""create_profiles_and_link_tokens

Revision ID: 4c1e2a7b9d10
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c1e2a7b9d10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', sa.TEXT(), nullable=False),
        sa.Column('identity_id', sa.TEXT(), nullable=False),
        sa.Column('email', sa.TEXT(), nullable=True),
        sa.Column('display_name', sa.TEXT(), nullable=True),
        sa.Column('tier', sa.TEXT(), nullable=False, server_default='free'),
        sa.Column('quota_used', sa.INTEGER(), nullable=False, server_default='0'),
        sa.Column('quota_limit', sa.INTEGER(), nullable=False, server_default='50'),
        sa.Column('trial_started_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('trial_expires_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('telegram_chat_id', sa.BIGINT(), nullable=True),
        sa.Column('telegram_username', sa.TEXT(), nullable=True),
        sa.Column('telegram_linked_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('last_activity_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('identity_id', name='uq_profiles_identity_id'),
        sa.UniqueConstraint('telegram_chat_id', name='uq_profiles_telegram_chat_id'),
        sa.CheckConstraint('quota_used >= 0', name='ck_profiles_quota_used_nonneg'),
        sa.CheckConstraint('quota_limit >= -1', name='ck_profiles_quota_limit_range'),
        sa.CheckConstraint(
            'quota_limit = -1 OR quota_used <= quota_limit',
            name='ck_profiles_quota_within_limit',
        ),
        sa.CheckConstraint(
            "tier IN ('free', 'starter', 'pro', 'enterprise')",
            name='ck_profiles_tier',
        ),
    )

    op.create_table(
        'telegram_link_tokens',
        sa.Column('token_hash', sa.TEXT(), nullable=False),
        sa.Column('profile_id', sa.TEXT(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('consumed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('token_hash'),
        sa.ForeignKeyConstraint(['profile_id'], ['profiles.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_telegram_link_tokens_profile', 'telegram_link_tokens', ['profile_id'])


def downgrade() -> None:
    op.drop_index('idx_telegram_link_tokens_profile', table_name='telegram_link_tokens')
    op.drop_table('telegram_link_tokens')
    op.drop_table('profiles')
