"""revision requests, titled deliverable links, storage path backfill

Revision ID: 0002_revisions_and_links
Revises: 0001_initial_schema
Create Date: 2026-10-19 15:00:00.000000

``milestones.deliverable_link`` is copied into ``deliverable_links`` and is no
longer read by the application.
"""

from alembic import op
import sqlalchemy as sa

from deliverhub.config import DELIVERABLES_BUCKET, PAYMENT_PROOFS_BUCKET
from deliverhub.services.storage_paths import path_from_legacy_url


# revision identifiers, used by Alembic.
revision = "0002_revisions_and_links"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None

LEGACY_LINK_TITLE = "Shared Link"


def _backfill(conn) -> None:
    milestones = sa.table(
        "milestones",
        sa.column("id", sa.Integer),
        sa.column("payment_proof_url", sa.String),
        sa.column("payment_proof_path", sa.String),
        sa.column("deliverable_url", sa.String),
        sa.column("deliverable_path", sa.String),
        sa.column("deliverable_link", sa.String),
        sa.column("deliverable_links", sa.JSON),
    )
    rows = conn.execute(
        sa.select(
            milestones.c.id,
            milestones.c.payment_proof_url,
            milestones.c.payment_proof_path,
            milestones.c.deliverable_url,
            milestones.c.deliverable_path,
            milestones.c.deliverable_link,
        )
    ).all()
    for row in rows:
        values = {}
        if row.payment_proof_path is None:
            proof = path_from_legacy_url(row.payment_proof_url, PAYMENT_PROOFS_BUCKET)
            if proof:
                values["payment_proof_path"] = proof
        if row.deliverable_path is None:
            deliverable = path_from_legacy_url(row.deliverable_url, DELIVERABLES_BUCKET)
            if deliverable:
                values["deliverable_path"] = deliverable
        if row.deliverable_link:
            values["deliverable_links"] = [{"title": LEGACY_LINK_TITLE, "url": row.deliverable_link}]
        if values:
            conn.execute(milestones.update().where(milestones.c.id == row.id).values(**values))


def upgrade() -> None:
    op.add_column(
        "milestones",
        sa.Column("deliverable_links", sa.JSON, nullable=False, server_default=sa.text("'[]'")),
    )
    op.add_column("milestones", sa.Column("max_revisions", sa.Integer, nullable=True))
    op.add_column(
        "milestones",
        sa.Column("used_revisions", sa.Integer, nullable=False, server_default=sa.text("0")),
    )

    op.create_table(
        "revision_requests",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "milestone_id",
            sa.Integer,
            sa.ForeignKey("milestones.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("feedback", sa.Text, nullable=False),
        sa.Column("image_paths", sa.JSON, nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "addressed", name="revisionstatus"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("addressed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_revision_requests_milestone_id", "revision_requests", ["milestone_id"])

    _backfill(op.get_bind())


def downgrade() -> None:
    op.drop_index("ix_revision_requests_milestone_id", table_name="revision_requests")
    op.drop_table("revision_requests")
    with op.batch_alter_table("milestones") as batch:
        batch.drop_column("used_revisions")
        batch.drop_column("max_revisions")
        batch.drop_column("deliverable_links")
