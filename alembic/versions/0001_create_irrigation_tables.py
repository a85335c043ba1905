"""create farms, irrigation sectors and irrigation data

Revision ID: 0001
Revises:
Create Date: 2025-01-15 09:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "farms",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    op.create_table(
        "irrigation_sectors",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "farm_id",
            sa.Integer(),
            sa.ForeignKey("farms.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_irrigation_sectors_farm_id", "irrigation_sectors", ["farm_id"]
    )

    op.create_table(
        "irrigation_data",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "farm_id",
            sa.Integer(),
            sa.ForeignKey("farms.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "irrigation_sector_id",
            sa.Integer(),
            sa.ForeignKey("irrigation_sectors.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("start_time", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("end_time", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("nominal_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("real_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_irrigation_data_farm_id", "irrigation_data", ["farm_id"])
    op.create_index(
        "ix_irrigation_data_irrigation_sector_id",
        "irrigation_data",
        ["irrigation_sector_id"],
    )
    op.create_index("ix_irrigation_data_start_time", "irrigation_data", ["start_time"])
    op.create_index(
        "idx_irrigation_farm_time", "irrigation_data", ["farm_id", "start_time"]
    )
    op.create_index(
        "idx_irrigation_sector_time",
        "irrigation_data",
        ["irrigation_sector_id", "start_time"],
    )


def downgrade() -> None:
    op.drop_table("irrigation_data")
    op.drop_index("ix_irrigation_sectors_farm_id", table_name="irrigation_sectors")
    op.drop_table("irrigation_sectors")
    op.drop_table("farms")
