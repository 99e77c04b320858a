"""baseline_schema

Stores, synced orders/line items, customers, products and sync runs.

Revision ID: 4b1e9c2d7a30
Revises: 
Create Date: 2026-10-19 09:12:41.118305

"""
from typing import Sequence, Union

from alembic import op

from shopinsights.db_base import Base
import shopinsights.models  # noqa: F401 - required to register all model metadata


# revision identifiers, used by Alembic.
revision: str = '4b1e9c2d7a30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    Base.metadata.create_all(bind=bind)


def downgrade() -> None:
    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind)
