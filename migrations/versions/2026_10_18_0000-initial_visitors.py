"""Initial schema: visitors table

Revision ID: 001_visitors
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision: str = '001_visitors'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create the visitors table: one row per recorded page visit.
    """
    bind = op.get_bind()
    if 'visitors' in inspect(bind).get_table_names():
        return

    op.create_table(
        'visitors',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('session_id', sa.String(length=36), nullable=False),
        sa.Column('ip', sa.String(length=45), nullable=False),
        sa.Column('country', sa.String(length=100), nullable=False),
        sa.Column('country_code', sa.String(length=8), nullable=False),
        sa.Column('region', sa.String(length=100), nullable=False),
        sa.Column('city', sa.String(length=100), nullable=False),
        sa.Column('zip', sa.String(length=20), nullable=False),
        sa.Column('lat', sa.Float(), nullable=True),
        sa.Column('lon', sa.Float(), nullable=True),
        sa.Column('isp', sa.String(length=200), nullable=False),
        sa.Column('org', sa.String(length=200), nullable=False),
        sa.Column('timezone', sa.String(length=64), nullable=False),
        sa.Column('user_agent', sa.String(length=500), nullable=False),
        sa.Column('referrer', sa.String(length=1000), nullable=False),
        sa.Column('lookup_source', sa.String(length=50), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_index('ix_visitors_session_id', 'visitors', ['session_id'], unique=True)
    op.create_index('ix_visitors_ip', 'visitors', ['ip'])
    op.create_index('ix_visitors_country', 'visitors', ['country'])
    op.create_index('ix_visitors_city', 'visitors', ['city'])
    op.create_index('ix_visitors_timestamp', 'visitors', ['timestamp'])


def downgrade() -> None:
    """
    Drop the visitors table and its indexes.
    """
    op.drop_index('ix_visitors_timestamp', table_name='visitors')
    op.drop_index('ix_visitors_city', table_name='visitors')
    op.drop_index('ix_visitors_country', table_name='visitors')
    op.drop_index('ix_visitors_ip', table_name='visitors')
    op.drop_index('ix_visitors_session_id', table_name='visitors')
    op.drop_table('visitors')
