"""Stored blobs keyed by content hash

Revision ID: 20261019_0900
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op

revision = "20261019_0900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
CREATE TABLE IF NOT EXISTS stored_blobs (
  namespace varchar(64) NOT NULL,
  key varchar(12) NOT NULL,
  created timestamptz NOT NULL,
  remote_addr text NOT NULL DEFAULT '',
  user_agent text NOT NULL DEFAULT '',
  file_name text NOT NULL DEFAULT '',
  content_type text NOT NULL DEFAULT '',
  size bigint NOT NULL,
  data bytea NOT NULL,
  PRIMARY KEY (namespace, key)
);
"""
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS stored_blobs;")
