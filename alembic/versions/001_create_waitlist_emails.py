"""create waitlist_emails

Revision ID: 001
Revises: 
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'waitlist_emails',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('email_hash', sa.String(64), nullable=False),
        sa.Column('verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('verification_token', sa.String(100), nullable=True),
        sa.Column('verification_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('unsubscribe_token', sa.String(100), nullable=False),
        sa.Column('unsubscribed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('unsubscribed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('source', sa.String(50), nullable=True),
        sa.Column('referrer', sa.Text(), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('utm_source', sa.String(100), nullable=True),
        sa.Column('utm_medium', sa.String(100), nullable=True),
        sa.Column('utm_campaign', sa.String(100), nullable=True),
        sa.Column('utm_term', sa.String(100), nullable=True),
        sa.Column('utm_content', sa.String(100), nullable=True),
        sa.Column('ab_test_variant', sa.String(50), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('verification_token'),
        sa.UniqueConstraint('unsubscribe_token'),
    )
    op.create_index(op.f('ix_waitlist_emails_id'), 'waitlist_emails', ['id'], unique=False)
    op.create_index(op.f('ix_waitlist_emails_email_hash'), 'waitlist_emails', ['email_hash'], unique=True)
    op.create_index(op.f('ix_waitlist_emails_verified'), 'waitlist_emails', ['verified'], unique=False)
    op.create_index(op.f('ix_waitlist_emails_unsubscribed'), 'waitlist_emails', ['unsubscribed'], unique=False)
    op.create_index(op.f('ix_waitlist_emails_source'), 'waitlist_emails', ['source'], unique=False)
    op.create_index(op.f('ix_waitlist_emails_ab_test_variant'), 'waitlist_emails', ['ab_test_variant'], unique=False)
    op.create_index('idx_waitlist_emails_created_at', 'waitlist_emails', ['created_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('idx_waitlist_emails_created_at', table_name='waitlist_emails')
    op.drop_index(op.f('ix_waitlist_emails_ab_test_variant'), table_name='waitlist_emails')
    op.drop_index(op.f('ix_waitlist_emails_source'), table_name='waitlist_emails')
    op.drop_index(op.f('ix_waitlist_emails_unsubscribed'), table_name='waitlist_emails')
    op.drop_index(op.f('ix_waitlist_emails_verified'), table_name='waitlist_emails')
    op.drop_index(op.f('ix_waitlist_emails_email_hash'), table_name='waitlist_emails')
    op.drop_index(op.f('ix_waitlist_emails_id'), table_name='waitlist_emails')
    op.drop_table('waitlist_emails')
