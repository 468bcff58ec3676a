"""Create speech_segments table.

Revision ID: 20250731_create_speech_segments
Revises:
Create Date: 2025-07-31 14:32:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision = "20250731_create_speech_segments"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    inspector = inspect(bind)
    if "speech_segments" in inspector.get_table_names():
        return
    op.create_table(
        "speech_segments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("file_path", sa.String(length=512), nullable=False),
        sa.Column("transcription", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.String(length=20),
            nullable=False,
            server_default=sa.text("'pending'"),
        ),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("idx_speech_segments_status", "speech_segments", ["status"])
    op.create_index("idx_speech_segments_created_at", "speech_segments", ["created_at"])


def downgrade() -> None:
    bind = op.get_bind()
    inspector = inspect(bind)
    if "speech_segments" not in inspector.get_table_names():
        return
    op.drop_index("idx_speech_segments_created_at", table_name="speech_segments")
    op.drop_index("idx_speech_segments_status", table_name="speech_segments")
    op.drop_table("speech_segments")
