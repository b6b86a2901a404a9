"""Seed lifetime statistics counters

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19

"""
from datetime import datetime, timezone
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: Union[str, None] = '0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

METRICS = ('total_launches', 'total_users', 'total_playtime')

statistics = sa.table(
    'statistics',
    sa.column('metric', sa.String),
    sa.column('value', sa.Integer),
    sa.column('updated_at', sa.DateTime(timezone=True)),
)


def upgrade() -> None:
    now = datetime.now(timezone.utc)
    op.bulk_insert(
        statistics,
        [{'metric': metric, 'value': 0, 'updated_at': now} for metric in METRICS],
    )


def downgrade() -> None:
    op.execute(statistics.delete().where(statistics.c.metric.in_(METRICS)))
