from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "reservations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("holder_id", sa.String(), nullable=False),
        sa.Column("holder_email", sa.String(), nullable=True),
        sa.Column("holder_name", sa.String(), nullable=True),
        sa.Column("turf_ref", sa.String(), nullable=False),
        sa.Column("turf_name", sa.String(), nullable=True),
        sa.Column("date", sa.String(), nullable=False),
        sa.Column("slots", sa.JSON(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("payment", sa.JSON(), nullable=True),
        sa.Column("gateway_order_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_reservations_holder_id", "reservations", ["holder_id"], unique=False)
    op.create_index("ix_reservations_turf_ref", "reservations", ["turf_ref"], unique=False)
    op.create_index("ix_reservations_status", "reservations", ["status"], unique=False)
    op.create_index("ix_reservations_created_at", "reservations", ["created_at"], unique=False)

    op.create_table(
        "slot_claims",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "reservation_id",
            sa.String(36),
            sa.ForeignKey("reservations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("turf_ref", sa.String(), nullable=False),
        sa.Column("date", sa.String(), nullable=False),
        sa.Column("start_time", sa.String(), nullable=False),
        sa.Column("end_time", sa.String(), nullable=False),
        sa.UniqueConstraint("turf_ref", "date", "start_time", "end_time", name="uq_slot_claims_slot"),
    )
    op.create_index("ix_slot_claims_reservation_id", "slot_claims", ["reservation_id"], unique=False)

    op.create_table(
        "audit_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("actor_id", sa.String(), nullable=True),
        sa.Column("target_reservation_id", sa.String(36), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_entries_action", "audit_entries", ["action"], unique=False)
    op.create_index(
        "ix_audit_entries_target_reservation_id", "audit_entries", ["target_reservation_id"], unique=False
    )


def downgrade():
    op.drop_index("ix_audit_entries_target_reservation_id", table_name="audit_entries")
    op.drop_index("ix_audit_entries_action", table_name="audit_entries")
    op.drop_table("audit_entries")
    op.drop_index("ix_slot_claims_reservation_id", table_name="slot_claims")
    op.drop_table("slot_claims")
    op.drop_index("ix_reservations_created_at", table_name="reservations")
    op.drop_index("ix_reservations_status", table_name="reservations")
    op.drop_index("ix_reservations_turf_ref", table_name="reservations")
    op.drop_index("ix_reservations_holder_id", table_name="reservations")
    op.drop_table("reservations")
