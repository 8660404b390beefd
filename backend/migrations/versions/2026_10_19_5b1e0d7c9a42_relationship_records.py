"""relationship records

Revision ID: 5b1e0d7c9a42
Revises:
Create Date: 2026-10-19 15:52:08.310467

"""

from alembic import op
import sqlalchemy as sa
import sqlmodel

# revision identifiers, used by Alembic.
revision = "5b1e0d7c9a42"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "relationship_records",
        sa.Column(
            "kind",
            sa.Enum("friends", "incoming", "outgoing", name="relationkind"),
            nullable=False,
        ),
        sa.Column("user_id", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("members", sa.JSON(), nullable=True),
        sa.Column("revision", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("kind", "user_id"),
    )


def downgrade() -> None:
    op.drop_table("relationship_records")
