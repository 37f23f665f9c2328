"""initial audit tables

Revision ID: 0001_initial_audit
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_audit'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False, unique=True),
        sa.Column('first_name', sa.String(length=128), nullable=False),
        sa.Column('last_name', sa.String(length=128), nullable=False),
        sa.Column('role', sa.String(length=64), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'))
    )
    op.create_index('ix_users_username', 'users', ['username'])
    op.create_index('ix_users_role', 'users', ['role'])

    # Append-only; ids must never be reused, hence sqlite_autoincrement
    op.create_table('audit_entries',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('old_value', sa.Text(), nullable=True),
        sa.Column('new_value', sa.Text(), nullable=True),
        sa.Column('old_value_kind', sa.String(length=16), nullable=True),
        sa.Column('new_value_kind', sa.String(length=16), nullable=True),
        sa.Column('changed_by', sa.Integer(), nullable=True),
        sa.Column('user_role', sa.String(length=64), nullable=True),
        sa.Column('affected_user_name', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=False),
        sa.Column('changed_at', sa.DateTime(), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_audit_entries_category', 'audit_entries', ['category'])
    op.create_index('ix_audit_entries_action', 'audit_entries', ['action'])
    op.create_index('ix_audit_entries_changed_by', 'audit_entries', ['changed_by'])
    op.create_index('ix_audit_entries_changed_at', 'audit_entries', ['changed_at'])
    op.create_index('ix_audit_entries_changed_at_id', 'audit_entries', ['changed_at', 'id'])


def downgrade():
    op.drop_index('ix_audit_entries_changed_at_id', table_name='audit_entries')
    op.drop_index('ix_audit_entries_changed_at', table_name='audit_entries')
    op.drop_index('ix_audit_entries_changed_by', table_name='audit_entries')
    op.drop_index('ix_audit_entries_action', table_name='audit_entries')
    op.drop_index('ix_audit_entries_category', table_name='audit_entries')
    op.drop_table('audit_entries')
    op.drop_index('ix_users_role', table_name='users')
    op.drop_index('ix_users_username', table_name='users')
    op.drop_table('users')
