"""Initial schema: staging tables and the canonical record graph.

Revision ID: 0001
Revises:
Create Date: 2026-10-18

"""

from __future__ import annotations

from alembic import op

from commonplace.adapters.sqlalchemy.mappings import mapper_registry

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    mapper_registry.metadata.create_all(op.get_bind())


def downgrade() -> None:
    mapper_registry.metadata.drop_all(op.get_bind())
