"""Create the character catalogue and per-learner progress tables."""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20260301_0002"
down_revision: Union[str, None] = "20260301_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "hanja_chars",
        sa.Column("char", sa.String(length=8), primary_key=True, nullable=False),
        sa.Column("grade", sa.Integer(), nullable=False),
        sa.Column("reading", sa.String(length=64), nullable=False),
        sa.Column("meaning", sa.String(length=255), nullable=False),
        sa.Column("examples", sa.JSON(), nullable=False),
    )
    op.create_index("ix_hanja_chars_grade", "hanja_chars", ("grade",))

    op.create_table(
        "progress",
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("char", sa.String(length=8), nullable=False),
        sa.Column("grade", sa.Integer(), nullable=False),
        sa.Column("state", sa.String(length=16), server_default="NEW", nullable=False),
        sa.Column("interval", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("streak", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("due_date", sa.String(length=10), nullable=False),
        sa.Column("wrong_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("last_reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ("chat_id",),
            ("users.chat_id",),
            name="fk_progress_chat_id_users",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("chat_id", "char", "grade", name="pk_progress"),
    )
    op.create_index(
        "ix_progress_chat_id_grade_due_date",
        "progress",
        ("chat_id", "grade", "due_date"),
    )


def downgrade() -> None:
    op.drop_index("ix_progress_chat_id_grade_due_date", table_name="progress")
    op.drop_table("progress")
    op.drop_index("ix_hanja_chars_grade", table_name="hanja_chars")
    op.drop_table("hanja_chars")
