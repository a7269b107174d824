from alembic import op
import sqlalchemy as sa

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade():
    op.add_column("reservations", sa.Column("gateway_payment_id", sa.String(), nullable=True))
    op.create_index(
        "ix_reservations_gateway_payment_id", "reservations", ["gateway_payment_id"], unique=True
    )


def downgrade():
    op.drop_index("ix_reservations_gateway_payment_id", table_name="reservations")
    with op.batch_alter_table("reservations") as batch_op:
        batch_op.drop_column("gateway_payment_id")
