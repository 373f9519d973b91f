"""Create the source registry table

Revision ID: 001_create_files
Revises:
Create Date: 2026-10-16

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_create_files'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the files table."""
    op.create_table(
        'files',
        sa.Column('id', sa.String(255), primary_key=True),
        sa.Column('display_name', sa.String(512), nullable=False),
        sa.Column('mime_type', sa.String(255), nullable=True),
        sa.Column('origin_location', sa.Text(), nullable=False),
        sa.Column('folder_path', sa.Text(), nullable=True),
        sa.Column('row_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('table_name', sa.String(255), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False,
                  server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'processed', 'failed', 'empty', 'unsupported')",
            name='files_status_check'),
    )
    op.create_index('idx_files_status', 'files', ['status'])


def downgrade() -> None:
    """Drop the files table."""
    op.drop_index('idx_files_status', table_name='files')
    op.drop_table('files')
