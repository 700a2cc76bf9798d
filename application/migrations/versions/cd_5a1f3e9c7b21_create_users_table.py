"""create users table

Revision ID: 5a1f3e9c7b21
Revises:
Create Date: 2026-10-18 12:40:11.204311

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5a1f3e9c7b21'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('user_type', sa.String(length=20), nullable=False, server_default='rider'),
        sa.Column('profile_photo', sa.String(length=500), nullable=True),
        sa.Column('rating', sa.Numeric(3, 2), nullable=False, server_default='5.00'),
        sa.Column('total_rides', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('language', sa.String(length=10), nullable=False, server_default='en'),
        sa.Column('profile_complete', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('phone'),
    )
    op.create_index('idx_users_phone', 'users', ['phone'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('idx_users_phone', table_name='users')
    op.drop_table('users')
