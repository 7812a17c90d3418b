"""Initial database schema: hotels, bookings, notification queue and tickets."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "20261018_000001"
down_revision = None
branch_labels = None
depends_on = None


_CLAIM_FUNCTION = """
CREATE OR REPLACE FUNCTION claim_pending_notifications(
    p_limit integer,
    p_lease_seconds integer DEFAULT 300,
    p_max_retries integer DEFAULT 10
)
RETURNS SETOF notification_queue
LANGUAGE sql
AS $$
    WITH candidates AS (
        SELECT id
        FROM notification_queue
        WHERE next_attempt_at <= now()
          AND (
              status = 'pending'
              OR (
                  status = 'processing'
                  AND (p_max_retries IS NULL OR retry_count < p_max_retries)
              )
          )
        ORDER BY next_attempt_at, created_at
        LIMIT p_limit
        FOR UPDATE SKIP LOCKED
    )
    UPDATE notification_queue q
    SET status = 'processing',
        next_attempt_at = now() + make_interval(secs => p_lease_seconds)
    FROM candidates c
    WHERE q.id = c.id
    RETURNING q.*;
$$;
"""

_MARK_SENT_FUNCTION = """
CREATE OR REPLACE FUNCTION mark_notification_sent(p_id uuid)
RETURNS void
LANGUAGE sql
AS $$
    UPDATE notification_queue
    SET status = 'sent',
        sent_at = now(),
        error_message = NULL,
        next_attempt_at = NULL
    WHERE id = p_id;
$$;
"""

_MARK_FAILED_FUNCTION = """
CREATE OR REPLACE FUNCTION mark_notification_failed(
    p_id uuid,
    p_error text,
    p_next_attempt_at timestamptz,
    p_max_retries integer DEFAULT NULL
)
RETURNS TABLE (status text, retry_count integer, next_attempt_at timestamptz)
LANGUAGE sql
AS $$
    UPDATE notification_queue q
    SET retry_count = q.retry_count + 1,
        error_message = p_error,
        status = CASE
            WHEN p_max_retries IS NOT NULL AND q.retry_count + 1 >= p_max_retries THEN 'failed'
            ELSE 'pending'
        END,
        next_attempt_at = CASE
            WHEN p_max_retries IS NOT NULL AND q.retry_count + 1 >= p_max_retries THEN NULL
            ELSE p_next_attempt_at
        END
    WHERE q.id = p_id
    RETURNING q.status, q.retry_count, q.next_attempt_at;
$$;
"""

_TICKET_NOTIFY_FUNCTION = """
CREATE OR REPLACE FUNCTION notify_ticket_change()
RETURNS trigger
LANGUAGE plpgsql
AS $$
DECLARE
    rec record;
BEGIN
    IF TG_OP = 'DELETE' THEN
        rec := OLD;
    ELSE
        rec := NEW;
    END IF;
    -- Channel name is hotel_ops.tickets.events.TICKET_CHANGE_CHANNEL.
    PERFORM pg_notify(
        'ticket_changes',
        json_build_object('id', rec.id, 'status', rec.status, 'op', TG_OP)::text
    );
    RETURN rec;
END;
$$;
"""

_TICKET_NOTIFY_TRIGGER = """
CREATE TRIGGER tickets_notify_change
AFTER INSERT OR UPDATE OR DELETE ON tickets
FOR EACH ROW EXECUTE FUNCTION notify_ticket_change();
"""


def upgrade() -> None:
    op.create_table(
        "hotels",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("wa_phone_number_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("now()")),
    )

    op.create_table(
        "bookings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("hotel_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("hotels.id", ondelete="CASCADE"), nullable=True),
        sa.Column("code", sa.String(length=64), nullable=True, unique=True),
        sa.Column("guest_name", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("now()")),
    )

    op.create_table(
        "notification_queue",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=True),
        sa.Column("channel", sa.String(length=20), nullable=False),
        sa.Column("template_code", sa.String(length=100), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("next_attempt_at", sa.TIMESTAMP(timezone=True), nullable=True, server_default=sa.text("now()")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("sent_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('pending', 'processing', 'sent', 'failed')", name="notification_queue_status_check"),
        sa.CheckConstraint("channel IN ('whatsapp', 'email')", name="notification_queue_channel_check"),
    )
    op.create_index(
        "ix_notification_queue_due",
        "notification_queue",
        ["status", "next_attempt_at"],
    )

    op.create_table(
        "tickets",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("service_key", sa.String(length=100), nullable=False),
        sa.Column("room", sa.String(length=20), nullable=True),
        sa.Column("booking_code", sa.String(length=64), nullable=True),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("sla_minutes", sa.Integer(), nullable=False),
        sa.Column("sla_deadline", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("created_by", sa.String(length=255), nullable=False),
        sa.Column("updated_by", sa.String(length=255), nullable=False),
        sa.Column("accepted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("started_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("done_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('Requested', 'Accepted', 'InProgress', 'Done', 'Cancelled')",
            name="tickets_status_check",
        ),
    )
    op.create_index("ix_tickets_status_created_at", "tickets", ["status", "created_at"])

    op.create_table(
        "ticket_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("ticket_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("from_status", sa.Text(), nullable=True),
        sa.Column("to_status", sa.Text(), nullable=False),
        sa.Column("actor", sa.String(length=255), nullable=False),
        sa.Column("note", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("metadata", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_ticket_events_ticket_id", "ticket_events", ["ticket_id", "created_at"])

    op.execute(_CLAIM_FUNCTION)
    op.execute(_MARK_SENT_FUNCTION)
    op.execute(_MARK_FAILED_FUNCTION)
    op.execute(_TICKET_NOTIFY_FUNCTION)
    op.execute(_TICKET_NOTIFY_TRIGGER)


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS tickets_notify_change ON tickets")
    op.execute("DROP FUNCTION IF EXISTS notify_ticket_change()")
    op.execute("DROP FUNCTION IF EXISTS mark_notification_failed(uuid, text, timestamptz, integer)")
    op.execute("DROP FUNCTION IF EXISTS mark_notification_sent(uuid)")
    op.execute("DROP FUNCTION IF EXISTS claim_pending_notifications(integer, integer, integer)")
    op.drop_index("ix_ticket_events_ticket_id", table_name="ticket_events")
    op.drop_table("ticket_events")
    op.drop_index("ix_tickets_status_created_at", table_name="tickets")
    op.drop_table("tickets")
    op.drop_index("ix_notification_queue_due", table_name="notification_queue")
    op.drop_table("notification_queue")
    op.drop_table("bookings")
    op.drop_table("hotels")
