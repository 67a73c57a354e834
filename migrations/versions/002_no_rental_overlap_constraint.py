"""Exclusion constraint: no two active rentals of a vehicle overlap.

Second layer behind the allocation transaction's locked re-check; an
insert that would overlap fails with ExclusionViolation, which the engine
reports as ConflictError.

Revision ID: 002_no_rental_overlap_constraint
Revises: 001_initial_schema
Create Date: 2026-10-05
"""
from __future__ import annotations

from pathlib import Path

from alembic import op

revision = "002_no_rental_overlap_constraint"
down_revision = "001_initial_schema"
branch_labels = None
depends_on = None

_SQL_FILE = Path(__file__).resolve().parent.parent / "sql" / "002_no_rental_overlap_constraint.sql"


def upgrade() -> None:
    op.execute(_SQL_FILE.read_text())


def downgrade() -> None:
    op.execute("ALTER TABLE rentals DROP CONSTRAINT IF EXISTS no_active_rental_overlap")
