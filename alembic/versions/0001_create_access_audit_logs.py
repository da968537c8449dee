"""Create access_audit_logs table

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:00:00.000000

One row per authorization decision. The decision column is restricted to
'ALLOW' or 'DENY' at the database level so raw SQL cannot insert anything
else.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str | None = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Apply schema changes."""
    op.create_table(
        'access_audit_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('module', sa.String(length=100), nullable=False),
        sa.Column('decision', sa.String(length=10), nullable=False),
        sa.Column('reason_code', sa.String(length=50), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_access_audit_logs')),
        sa.CheckConstraint("decision IN ('ALLOW', 'DENY')", name='valid_access_decision'),
    )
    op.create_index('ix_access_audit_logs_user_id', 'access_audit_logs', ['user_id'], unique=False)
    op.create_index('ix_access_audit_logs_action', 'access_audit_logs', ['action'], unique=False)
    op.create_index('ix_access_audit_logs_module', 'access_audit_logs', ['module'], unique=False)
    op.create_index('ix_access_audit_logs_decision', 'access_audit_logs', ['decision'], unique=False)
    op.create_index('ix_access_audit_logs_created_at', 'access_audit_logs', ['created_at'], unique=False)


def downgrade() -> None:
    """Revert schema changes."""
    op.drop_index('ix_access_audit_logs_created_at', table_name='access_audit_logs')
    op.drop_index('ix_access_audit_logs_decision', table_name='access_audit_logs')
    op.drop_index('ix_access_audit_logs_module', table_name='access_audit_logs')
    op.drop_index('ix_access_audit_logs_action', table_name='access_audit_logs')
    op.drop_index('ix_access_audit_logs_user_id', table_name='access_audit_logs')
    op.drop_table('access_audit_logs')
