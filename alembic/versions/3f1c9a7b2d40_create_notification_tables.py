"""create notification core tables

Revision ID: 3f1c9a7b2d40
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f1c9a7b2d40'
down_revision = None
branch_labels = None
depends_on = None


def _created_at() -> sa.Column:
    return sa.Column(
        'created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False
    )


def upgrade() -> None:
    op.create_table(
        'memberships',
        sa.Column('user_id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('organization_id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column(
            'role',
            sa.Enum('OWNER', 'ADMIN', 'MEMBER', name='role', native_enum=False),
            nullable=False,
        ),
    )
    op.create_index('ix_memberships_organization', 'memberships', ['organization_id'])

    op.create_table(
        'messages',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=True),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('receiver_id', sa.Uuid(), nullable=True),
        sa.Column('text', sa.Text(), nullable=False, server_default=''),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('is_announcement', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('priority', sa.String(length=20), nullable=True),
        _created_at(),
    )
    op.create_index(
        'ix_messages_org_announcement_created',
        'messages',
        ['organization_id', 'is_announcement', 'created_at'],
    )
    op.create_index('ix_messages_receiver', 'messages', ['receiver_id'])

    op.create_table(
        'organization_documents',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('uploaded_by', sa.Uuid(), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('file_name', sa.String(length=255), nullable=True),
        _created_at(),
    )
    op.create_index(
        'ix_org_documents_org_created', 'organization_documents', ['organization_id', 'created_at']
    )

    op.create_table(
        'bills',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='unpaid'),
        sa.Column('member_ids', sa.JSON(), nullable=True),
        _created_at(),
    )
    op.create_index(
        'ix_bills_org_status_created', 'bills', ['organization_id', 'payment_status', 'created_at']
    )

    op.create_table(
        'payments',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('payer_id', sa.Uuid(), nullable=True),
        sa.Column('bill_id', sa.Uuid(), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        _created_at(),
    )
    op.create_index('ix_payments_org_created', 'payments', ['organization_id', 'created_at'])

    op.create_table(
        'entity_views',
        sa.Column('category', sa.String(length=20), primary_key=True, nullable=False),
        sa.Column('entity_id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('user_id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column(
            'viewed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False
        ),
    )
    op.create_index('ix_entity_views_user', 'entity_views', ['user_id'])

    op.create_table(
        'device_tokens',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=True),
        sa.Column('platform', sa.String(length=20), nullable=False),
        sa.Column('token', sa.String(length=1024), nullable=False),
        sa.Column('app_version', sa.String(length=50), nullable=True),
        sa.Column('disabled', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        _created_at(),
        sa.Column(
            'updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False
        ),
        sa.Column('last_active_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('uq_device_tokens_token', 'device_tokens', ['token'], unique=True)
    op.create_index('ix_device_tokens_user', 'device_tokens', ['user_id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_device_tokens_user', table_name='device_tokens')
    op.drop_index('uq_device_tokens_token', table_name='device_tokens')
    op.drop_table('device_tokens')
    op.drop_index('ix_entity_views_user', table_name='entity_views')
    op.drop_table('entity_views')
    op.drop_index('ix_payments_org_created', table_name='payments')
    op.drop_table('payments')
    op.drop_index('ix_bills_org_status_created', table_name='bills')
    op.drop_table('bills')
    op.drop_index('ix_org_documents_org_created', table_name='organization_documents')
    op.drop_table('organization_documents')
    op.drop_index('ix_messages_receiver', table_name='messages')
    op.drop_index('ix_messages_org_announcement_created', table_name='messages')
    op.drop_table('messages')
    op.drop_index('ix_memberships_organization', table_name='memberships')
    op.drop_table('memberships')
