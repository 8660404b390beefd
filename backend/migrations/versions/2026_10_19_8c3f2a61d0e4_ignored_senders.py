"""ignored senders

Revision ID: 8c3f2a61d0e4
Revises: 5b1e0d7c9a42
Create Date: 2026-10-19 18:04:41.772150

"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "8c3f2a61d0e4"
down_revision = "5b1e0d7c9a42"
branch_labels = None
depends_on = None

old_kind = sa.Enum("friends", "incoming", "outgoing", name="relationkind")
new_kind = sa.Enum("friends", "incoming", "outgoing", "ignored", name="relationkind")


def upgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        op.execute("ALTER TYPE relationkind ADD VALUE IF NOT EXISTS 'ignored'")
        return
    with op.batch_alter_table("relationship_records") as batch_op:
        batch_op.alter_column(
            "kind", existing_type=old_kind, type_=new_kind, existing_nullable=False
        )


def downgrade() -> None:
    op.execute("DELETE FROM relationship_records WHERE kind = 'ignored'")
    if op.get_bind().dialect.name == "postgresql":
        # enum values cannot be dropped, the unused one stays
        return
    with op.batch_alter_table("relationship_records") as batch_op:
        batch_op.alter_column(
            "kind", existing_type=new_kind, type_=old_kind, existing_nullable=False
        )
