"""Initial schema with asset ledger and attachments

Revision ID: 001_initial_schema
Revises:
Create Date: 2025-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create assets table
    op.create_table(
        'assets',
        sa.Column('id', sa.String(100), nullable=False),
        sa.Column('asset_number', sa.String(100), nullable=False),
        sa.Column('equipment_name', sa.String(255), nullable=False, server_default=''),
        sa.Column('acquisition_date', sa.String(32), nullable=False, server_default=''),
        sa.Column('acquisition_amount', sa.BigInteger(), nullable=True),
        sa.Column('lifespan_years', sa.Integer(), nullable=True),
        sa.Column('factory', sa.String(255), nullable=False, server_default=''),
        sa.Column('catalog_name', sa.String(255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('building', sa.String(255), nullable=True),
        sa.Column('floor', sa.String(64), nullable=True),
        sa.Column('g', sa.Integer(), nullable=True),
        sa.Column('u', sa.Integer(), nullable=True),
        sa.Column('t', sa.Integer(), nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='unfilled'),
        sa.Column('input_by', sa.String(100), nullable=False, server_default=''),
        sa.Column('assigned_to', sa.String(100), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        # Scores are 1-5 or unset
        sa.CheckConstraint('g IS NULL OR g BETWEEN 1 AND 5', name='ck_assets_g_range'),
        sa.CheckConstraint('u IS NULL OR u BETWEEN 1 AND 5', name='ck_assets_u_range'),
        sa.CheckConstraint('t IS NULL OR t BETWEEN 1 AND 5', name='ck_assets_t_range'),
    )
    op.create_index('ix_assets_asset_number', 'assets', ['asset_number'], unique=True)
    op.create_index('ix_assets_updated_at', 'assets', ['updated_at'], unique=False)

    # Create asset_attachments table
    op.create_table(
        'asset_attachments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('asset_id', sa.String(100), nullable=False),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('file_path', sa.String(512), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('file_type', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_asset_attachments_id', 'asset_attachments', ['id'], unique=False)
    op.create_index('ix_asset_attachments_asset_id', 'asset_attachments', ['asset_id'], unique=False)
    op.create_index('ix_asset_attachments_file_path', 'asset_attachments', ['file_path'], unique=True)


def downgrade() -> None:
    op.drop_index('ix_asset_attachments_file_path', table_name='asset_attachments')
    op.drop_index('ix_asset_attachments_asset_id', table_name='asset_attachments')
    op.drop_index('ix_asset_attachments_id', table_name='asset_attachments')
    op.drop_table('asset_attachments')

    op.drop_index('ix_assets_updated_at', table_name='assets')
    op.drop_index('ix_assets_asset_number', table_name='assets')
    op.drop_table('assets')
