"""
Create the tenant-scoped records table.

Revision ID: a1c3e5f7b9d2
Revises:
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1c3e5f7b9d2"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "records",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("collection", sa.String(length=64), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_records_id", "records", ["id"])
    op.create_index("ix_records_tenant_id", "records", ["tenant_id"])
    op.create_index("ix_records_tenant_collection", "records", ["tenant_id", "collection"])


def downgrade() -> None:
    op.drop_index("ix_records_tenant_collection", table_name="records")
    op.drop_index("ix_records_tenant_id", table_name="records")
    op.drop_index("ix_records_id", table_name="records")
    op.drop_table("records")
