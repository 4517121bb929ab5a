"""Video pipeline migration.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the videos and video_jobs tables.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "videos",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("owner_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(200), nullable=False, server_default="Untitled Video"),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("visibility", sa.String(20), nullable=False, server_default="private"),
        sa.Column("original_file_name", sa.String(512), nullable=False),
        sa.Column("unique_file_name", sa.String(255), nullable=False),
        sa.Column("source_path", sa.String(1024), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="waiting"),
        sa.Column("available_resolutions", sa.JSON(), nullable=False),
        sa.Column("duration", sa.Float(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("processing_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_videos_owner_id"), "videos", ["owner_id"], unique=False)
    op.create_index(op.f("ix_videos_unique_file_name"), "videos", ["unique_file_name"], unique=True)
    op.create_index(op.f("ix_videos_status"), "videos", ["status"], unique=False)
    op.create_index(
        "ix_videos_status_processing_started",
        "videos",
        ["status", "processing_started_at"],
        unique=False,
    )

    op.create_table(
        "video_jobs",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("job_id", sa.String(255), nullable=False),
        sa.Column("video_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False, server_default="transcode"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["video_id"],
            ["videos.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_video_jobs_job_id"), "video_jobs", ["job_id"], unique=True)
    op.create_index(op.f("ix_video_jobs_video_id"), "video_jobs", ["video_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_video_jobs_video_id"), table_name="video_jobs")
    op.drop_index(op.f("ix_video_jobs_job_id"), table_name="video_jobs")
    op.drop_table("video_jobs")

    op.drop_index("ix_videos_status_processing_started", table_name="videos")
    op.drop_index(op.f("ix_videos_status"), table_name="videos")
    op.drop_index(op.f("ix_videos_unique_file_name"), table_name="videos")
    op.drop_index(op.f("ix_videos_owner_id"), table_name="videos")
    op.drop_table("videos")
