from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        "availability_windows",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("provider_id", sa.String(), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_availability_windows_day"),
        sa.CheckConstraint("end_time > start_time", name="ck_availability_windows_range"),
    )
    op.create_index("ix_availability_windows_provider_id", "availability_windows", ["provider_id"], unique=False)

    op.create_table(
        "blackouts",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("provider_id", sa.String(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=True),
        sa.Column("end_time", sa.String(length=5), nullable=True),
        sa.Column("reason", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_blackouts_provider_id", "blackouts", ["provider_id"], unique=False)
    op.create_index("ix_blackouts_date", "blackouts", ["date"], unique=False)

    op.create_table(
        "provider_settings",
        sa.Column("provider_id", sa.String(), primary_key=True),
        sa.Column("slot_duration_minutes", sa.Integer(), nullable=False),
        sa.Column("buffer_minutes", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("slot_duration_minutes BETWEEN 15 AND 240", name="ck_provider_settings_duration"),
        sa.CheckConstraint("buffer_minutes BETWEEN 0 AND 60", name="ck_provider_settings_buffer"),
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("requester_id", sa.String(), nullable=False),
        sa.Column("provider_id", sa.String(), nullable=False),
        sa.Column("service_type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scheduled_end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("address", sa.String(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(), nullable=True),
        sa.Column("cancellation_reason", sa.String(), nullable=True),
        sa.Column("rescheduled_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rescheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rescheduled_by", sa.String(), nullable=True),
        sa.Column("reschedule_reason", sa.String(), nullable=True),
    )
    op.create_index("ix_bookings_requester_id", "bookings", ["requester_id"], unique=False)
    op.create_index("ix_bookings_provider_id", "bookings", ["provider_id"], unique=False)
    op.create_index("ix_bookings_status", "bookings", ["status"], unique=False)
    op.create_index("ix_bookings_scheduled_at", "bookings", ["scheduled_at"], unique=False)

    op.create_table(
        "booking_reminders",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("booking_id", sa.String(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("job_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_booking_reminders_booking_id", "booking_reminders", ["booking_id"], unique=False)

    op.create_table(
        "booking_tracking",
        sa.Column("booking_id", sa.String(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

def downgrade():
    op.drop_table("booking_tracking")
    op.drop_index("ix_booking_reminders_booking_id", table_name="booking_reminders")
    op.drop_table("booking_reminders")
    op.drop_index("ix_bookings_scheduled_at", table_name="bookings")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_provider_id", table_name="bookings")
    op.drop_index("ix_bookings_requester_id", table_name="bookings")
    op.drop_table("bookings")
    op.drop_table("provider_settings")
    op.drop_index("ix_blackouts_date", table_name="blackouts")
    op.drop_index("ix_blackouts_provider_id", table_name="blackouts")
    op.drop_table("blackouts")
    op.drop_index("ix_availability_windows_provider_id", table_name="availability_windows")
    op.drop_table("availability_windows")
