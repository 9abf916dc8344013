"""Initial schema: partner_schools, partner_imports, partner_geocode_jobs, geocode_cache.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _job_columns() -> list[sa.Column]:
    return [
        sa.Column("status", sa.String(20), nullable=False, server_default="queued", index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("finished_at", sa.DateTime(timezone=True)),
        sa.Column("error_log", sa.Text),
    ]


def upgrade() -> None:
    # Partner schools
    op.create_table(
        "partner_schools",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("external_key", sa.Text, unique=True, nullable=False, index=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("continent", sa.Text, index=True),
        sa.Column("country", sa.Text, index=True),
        sa.Column("city", sa.Text),
        sa.Column("status", sa.String(20), nullable=False, server_default="unknown", index=True),
        sa.Column("mobility_programmes", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("language_requirements", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("agreement_scope", sa.Text),
        sa.Column("degree_programmes_in_agreement", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("further_info", sa.Text),
        sa.Column("longitude", sa.Float),
        sa.Column("latitude", sa.Float),
        sa.Column("geocode_precision", sa.String(20), nullable=False, server_default="none"),
        sa.Column("geocode_provider", sa.String(20)),
        sa.Column("geocode_query", sa.Text),
        sa.Column("geocode_updated_at", sa.DateTime(timezone=True)),
        sa.Column("source_import_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_partner_geo", "partner_schools", ["longitude", "latitude"])
    op.create_index("idx_partner_geocode_precision", "partner_schools", ["geocode_precision"])

    # Imports
    op.create_table(
        "partner_imports",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        *_job_columns(),
        sa.Column("original_file_name", sa.String(255), nullable=False),
        sa.Column("file_url", sa.String(500), nullable=False),
        sa.Column("local_path", sa.Text, nullable=False),
        sa.Column("file_hash", sa.String(64), nullable=False, index=True),
        sa.Column("inserted", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("updated", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("unchanged", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("failed_rows", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("row_errors", postgresql.JSONB),
        sa.Column("warnings", postgresql.JSONB),
    )

    # Geocode backfill jobs
    op.create_table(
        "partner_geocode_jobs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        *_job_columns(),
        sa.Column("requested_limit", sa.Integer),
        sa.Column("provider", sa.String(20), nullable=False, server_default="nominatim"),
        sa.Column("total_candidates", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("processed", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("updated", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("skipped", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("failed", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("row_errors", postgresql.JSONB),
    )

    # Geocode cache, failures included
    op.create_table(
        "geocode_cache",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("query", sa.Text, nullable=False),
        sa.Column("provider", sa.String(20), nullable=False, server_default="nominatim"),
        sa.Column("ok", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("latitude", sa.Float),
        sa.Column("longitude", sa.Float),
        sa.Column("display_name", sa.Text),
        sa.Column("raw", postgresql.JSONB),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
        sa.UniqueConstraint("provider", "query", name="uq_geocode_cache_provider_query"),
    )


def downgrade() -> None:
    op.drop_table("geocode_cache")
    op.drop_table("partner_geocode_jobs")
    op.drop_table("partner_imports")
    op.drop_index("idx_partner_geocode_precision", table_name="partner_schools")
    op.drop_index("idx_partner_geo", table_name="partner_schools")
    op.drop_table("partner_schools")
