"""Add personal details to profiles

Revision ID: 8e2d4b6a1c55
Revises: 3f1c2a9d7b10
Create Date: 2026-10-20 10:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# Revision identifiers used by Alembic
revision: str = '8e2d4b6a1c55'
down_revision: Union[str, Sequence[str], None] = '3f1c2a9d7b10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Fields edited by the user from the profile page
    op.add_column('profiles', sa.Column('phone', sa.String(length=32), nullable=True))
    op.add_column('profiles', sa.Column('birth_date', sa.Date(), nullable=True))
    op.add_column('profiles', sa.Column('gender', sa.String(length=20), nullable=True))
    op.add_column('profiles', sa.Column('dni', sa.String(length=20), nullable=True))
    op.add_column('profiles', sa.Column('bio', sa.String(), nullable=True))
    op.add_column('profiles', sa.Column('avatar_url', sa.String(), nullable=True))


def downgrade() -> None:
    """Downgrade schema."""
    with op.batch_alter_table('profiles') as batch_op:
        batch_op.drop_column('avatar_url')
        batch_op.drop_column('bio')
        batch_op.drop_column('dni')
        batch_op.drop_column('gender')
        batch_op.drop_column('birth_date')
        batch_op.drop_column('phone')
