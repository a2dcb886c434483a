"""add_api_keys_table

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-19 10:12:41.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'api_keys',
        sa.Column('id', sa.String(length=32), nullable=False),

        # Credential material (write-once)
        sa.Column('token', sa.String(length=255), nullable=False),
        sa.Column('salt', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('redacted', sa.String(length=32), nullable=False),

        # Key identification
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),

        # Lifecycle
        sa.Column('created_by', sa.String(length=255), nullable=False),
        sa.Column('revoked_by', sa.String(length=255), nullable=True),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),

        sa.PrimaryKeyConstraint('id'),
    )

    op.create_index('ix_api_keys_token', 'api_keys', ['token'])
    op.create_index('ix_api_keys_type', 'api_keys', ['type'])
    op.create_index('ix_api_keys_revoked_at', 'api_keys', ['revoked_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_api_keys_revoked_at', table_name='api_keys')
    op.drop_index('ix_api_keys_type', table_name='api_keys')
    op.drop_index('ix_api_keys_token', table_name='api_keys')

    op.drop_table('api_keys')
