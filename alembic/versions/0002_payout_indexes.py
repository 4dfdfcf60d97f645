"""indexes for payout queues and history lookups

Revision ID: 0002_payout_indexes
Revises: 0001_jobs_schema
Create Date: 2026-10-12 00:30:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0002_payout_indexes"
down_revision = "0001_jobs_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_jobs_status_payout ON app.jobs (status, payout_status, payment_status);"
    )
    op.execute("CREATE INDEX IF NOT EXISTS ix_jobs_contractor ON app.jobs (contractor_id);")
    op.execute("CREATE INDEX IF NOT EXISTS ix_jobs_completed_at ON app.jobs (completed_at DESC);")
    op.execute("CREATE INDEX IF NOT EXISTS ix_job_history_job ON app.job_history (job_id, seq);")
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_contractor_payments_contractor "
        "ON app.contractor_payments (contractor_id, initiated_at DESC);"
    )


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS app.ix_contractor_payments_contractor;")
    op.execute("DROP INDEX IF EXISTS app.ix_job_history_job;")
    op.execute("DROP INDEX IF EXISTS app.ix_jobs_completed_at;")
    op.execute("DROP INDEX IF EXISTS app.ix_jobs_contractor;")
    op.execute("DROP INDEX IF EXISTS app.ix_jobs_status_payout;")
