"""Allow the permanent status and record who persisted an item."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20250315_01"
down_revision = "20250301_01"
branch_labels = None
depends_on = None


def upgrade() -> None:
    with op.batch_alter_table("media") as batch_op:
        batch_op.drop_constraint("ck_media_status", type_="check")
        batch_op.create_check_constraint(
            "ck_media_status",
            "status IN ('active', 'trashed', 'permanent', 'gone')",
        )

    op.create_table(
        "persistent_media",
        sa.Column("media_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "persisted_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("media_id", name="pk_persistent_media"),
        sa.ForeignKeyConstraint(
            ["media_id"],
            ["media.id"],
            name="fk_persistent_media_media_id_media",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_persistent_media_user_id_users",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_persistent_media_user_id", "persistent_media", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_persistent_media_user_id", table_name="persistent_media")
    op.drop_table("persistent_media")
    op.execute("UPDATE media SET status = 'gone' WHERE status = 'permanent'")
    with op.batch_alter_table("media") as batch_op:
        batch_op.drop_constraint("ck_media_status", type_="check")
        batch_op.create_check_constraint(
            "ck_media_status",
            "status IN ('active', 'trashed', 'gone')",
        )
