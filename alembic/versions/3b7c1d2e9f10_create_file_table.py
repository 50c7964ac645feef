"""Create file table

Revision ID: 3b7c1d2e9f10
Revises:
Create Date: 2026-10-19 10:12:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel


# revision identifiers, used by Alembic.
revision: str = '3b7c1d2e9f10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'file',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.Uuid(), nullable=False),
        sa.Column(
            'owner_type',
            sqlmodel.sql.sqltypes.AutoString(length=255),
            nullable=False
        ),
        sa.Column(
            'owner_id',
            sqlmodel.sql.sqltypes.AutoString(length=255),
            nullable=False
        ),
        sa.Column('disk', sqlmodel.sql.sqltypes.AutoString(length=100), nullable=True),
        sa.Column('path', sqlmodel.sql.sqltypes.AutoString(length=1024), nullable=True),
        sa.Column('filename', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column('display_name', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column('mimetype', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column('size', sa.BigInteger(), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column(
            'created_at',
            sa.DateTime(),
            server_default=sa.text('CURRENT_TIMESTAMP'),
            nullable=True
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(),
            server_default=sa.text('CURRENT_TIMESTAMP'),
            nullable=True
        ),
        sa.CheckConstraint('size >= 0', name='ck_file_size_non_negative'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_file_uuid'), 'file', ['uuid'], unique=True)
    op.create_index('ix_file_owner', 'file', ['owner_type', 'owner_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_file_owner', table_name='file')
    op.drop_index(op.f('ix_file_uuid'), table_name='file')
    op.drop_table('file')
