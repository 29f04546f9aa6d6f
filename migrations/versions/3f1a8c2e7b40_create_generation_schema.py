"""create generation schema

Revision ID: 3f1a8c2e7b40
Revises:
Create Date: 2026-10-19 09:00:00
"""

from alembic import op
import sqlalchemy as sa

revision = "3f1a8c2e7b40"
down_revision = None
branch_labels = None
depends_on = None

_STATUS_CHECK = "status in ('QUEUED', 'PROCESSING', 'COMPLETED', 'FAILED')"


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        sa.Uuid(),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def _prompt_fk() -> sa.Column:
    return sa.Column(
        "prompt_id",
        sa.Uuid(),
        sa.ForeignKey("prompt.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "user_account",
        _id_column(),
        sa.Column("subject_id", sa.Text(), nullable=False, unique=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_table(
        "prompt",
        _id_column(),
        sa.Column("prompt_id", sa.Text(), nullable=False, unique=True),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("language", sa.Text(), nullable=False, server_default="english"),
        sa.Column(
            "subject_id",
            sa.Text(),
            sa.ForeignKey("user_account.subject_id", ondelete="SET NULL"),
            nullable=True,
        ),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_prompt_subject_id", "prompt", ["subject_id"])
    op.create_table(
        "script",
        _id_column(),
        sa.Column("script_id", sa.Text(), nullable=False, unique=True),
        _prompt_fk(),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("explanation", sa.Text(), nullable=False),
        sa.Column("script", sa.Text(), nullable=False),
        sa.Column("narration", sa.Text(), nullable=False),
        _timestamp("created_at"),
    )
    op.create_index("ix_script_prompt_id", "script", ["prompt_id"])
    op.create_table(
        "audio",
        _id_column(),
        _prompt_fk(),
        sa.Column("script_id", sa.Uuid(), sa.ForeignKey("script.id", ondelete="SET NULL"), nullable=True),
        sa.Column("audio_url", sa.Text(), nullable=False),
        sa.Column("used_test_audio", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("language", sa.Text(), nullable=False, server_default="english"),
        _timestamp("created_at"),
    )
    op.create_index("ix_audio_prompt_id", "audio", ["prompt_id"])
    op.create_table(
        "video",
        _id_column(),
        _prompt_fk(),
        sa.Column("status", sa.Text(), nullable=False, server_default="QUEUED"),
        sa.Column("job_id", sa.Text(), nullable=True, unique=True),
        sa.Column("video_url", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("quality", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(_STATUS_CHECK, name="ck_video_status"),
        sa.CheckConstraint(
            "(status = 'COMPLETED') = (video_url IS NOT NULL)", name="ck_video_url_completed"
        ),
        sa.CheckConstraint(
            "(status = 'FAILED') = (error_message IS NOT NULL)", name="ck_video_error_failed"
        ),
    )
    op.create_index("ix_video_prompt_id", "video", ["prompt_id"])
    op.create_table(
        "mux",
        _id_column(),
        _prompt_fk(),
        sa.Column("video_id", sa.Uuid(), sa.ForeignKey("video.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="QUEUED"),
        sa.Column("job_id", sa.Text(), nullable=True, unique=True),
        sa.Column("final_video_url", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("output_name", sa.Text(), nullable=True),
        sa.Column("bucket_name", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(_STATUS_CHECK, name="ck_mux_status"),
        sa.CheckConstraint(
            "(status = 'COMPLETED') = (final_video_url IS NOT NULL)",
            name="ck_mux_url_completed",
        ),
        sa.CheckConstraint(
            "(status = 'FAILED') = (error_message IS NOT NULL)", name="ck_mux_error_failed"
        ),
    )
    op.create_index("ix_mux_prompt_id", "mux", ["prompt_id"])


def downgrade() -> None:
    op.drop_index("ix_mux_prompt_id", table_name="mux")
    op.drop_table("mux")
    op.drop_index("ix_video_prompt_id", table_name="video")
    op.drop_table("video")
    op.drop_index("ix_audio_prompt_id", table_name="audio")
    op.drop_table("audio")
    op.drop_index("ix_script_prompt_id", table_name="script")
    op.drop_table("script")
    op.drop_index("ix_prompt_subject_id", table_name="prompt")
    op.drop_table("prompt")
    op.drop_table("user_account")
