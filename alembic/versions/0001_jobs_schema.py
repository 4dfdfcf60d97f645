"""jobs, history, contractors, contractor payments

Revision ID: 0001_jobs_schema
Revises:
Create Date: 2026-10-12 00:00:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0001_jobs_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS app;")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.contractors (
            id text PRIMARY KEY,
            legal_name text,
            business_name text,
            contractor_tier text NOT NULL DEFAULT 'bronze'
                CHECK (contractor_tier IN ('bronze', 'silver', 'gold')),
            payment_schedule text NOT NULL DEFAULT 'weekly'
                CHECK (payment_schedule IN ('per_job', 'weekly', 'biweekly', 'monthly')),
            created_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.jobs (
            id uuid PRIMARY KEY,
            customer_id text NOT NULL,
            service_type_id text,
            status text NOT NULL DEFAULT 'submitted'
                CHECK (status IN (
                    'submitted', 'ready_to_assign', 'open', 'assigned', 'en_route',
                    'on_site', 'in_progress', 'completed', 'cancel_requested', 'cancelled'
                )),
            contractor_id text,
            description text,
            city text,
            category text,
            estimate jsonb,

            final_price numeric(12, 2) CHECK (final_price IS NULL OR final_price >= 0),
            material_fees numeric(12, 2),
            contractor_tier text,
            net_amount numeric(12, 2),
            processing_fee numeric(12, 2),
            platform_fee numeric(12, 2),
            contractor_payout numeric(12, 2) CHECK (contractor_payout IS NULL OR contractor_payout >= 0),
            net_platform_revenue numeric(12, 2),

            payment_status text NOT NULL DEFAULT 'unpaid'
                CHECK (payment_status IN ('unpaid', 'paid', 'refunded')),
            payout_status text NOT NULL DEFAULT 'not_ready'
                CHECK (payout_status IN ('not_ready', 'ready', 'processing', 'paid')),

            start_report jsonb,
            completion_report jsonb,
            cancellation jsonb,
            relist_count integer NOT NULL DEFAULT 0,

            version integer NOT NULL DEFAULT 0,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now(),
            completed_at timestamptz
        );
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.job_history (
            seq bigserial PRIMARY KEY,
            job_id uuid NOT NULL REFERENCES app.jobs(id),
            at timestamptz NOT NULL DEFAULT now(),
            actor_role text NOT NULL,
            actor_id text,
            action text NOT NULL,
            details text NOT NULL DEFAULT ''
        );
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.contractor_payments (
            id uuid PRIMARY KEY,
            contractor_id text NOT NULL REFERENCES app.contractors(id),
            amount numeric(12, 2) NOT NULL CHECK (amount >= 0),
            job_ids text[] NOT NULL,
            payment_schedule text NOT NULL,
            payment_method text NOT NULL,
            status text NOT NULL,
            initiated_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS app.contractor_payments;")
    op.execute("DROP TABLE IF EXISTS app.job_history;")
    op.execute("DROP TABLE IF EXISTS app.jobs;")
    op.execute("DROP TABLE IF EXISTS app.contractors;")
