"""resume_files and resume_grading

Revision ID: 0001_resume_evaluation
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_resume_evaluation"
down_revision = None
branch_labels = None
depends_on = None


def _score_check(col):
    return sa.CheckConstraint(f"{col} >= 0 AND {col} <= 100", name=f"ck_resume_grading_{col}")


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)

    # create only when missing, so databases bootstrapped with CREATE_TABLES can be stamped forward
    if not insp.has_table("resume_files"):
        op.create_table(
            "resume_files",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column("user_id", sa.String(36), nullable=False),
            sa.Column("storage_url", sa.String(512), nullable=False),
            sa.Column("original_filename", sa.String(255)),
            sa.Column("content_type", sa.String(128)),
            sa.Column("size", sa.Integer),
            sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
        )
        op.create_index("ix_resume_files_user_id", "resume_files", ["user_id"])

    if not insp.has_table("resume_grading"):
        op.create_table(
            "resume_grading",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column("evaluation_id", sa.String(36), nullable=False),
            sa.Column("user_id", sa.String(36), nullable=False),
            sa.Column("file_id", sa.String(36), sa.ForeignKey("resume_files.id", ondelete="SET NULL")),
            sa.Column("job_title", sa.String(255), nullable=False),
            sa.Column("job_description", sa.Text, nullable=False),
            sa.Column("resume_json", sa.JSON, nullable=False),
            sa.Column("ats_score", sa.Integer, nullable=False),
            sa.Column("keyword_score", sa.Integer, nullable=False),
            sa.Column("format_score", sa.Integer, nullable=False),
            sa.Column("overall_score", sa.Integer, nullable=False),
            sa.Column("suggestions", sa.JSON),
            sa.Column("review", sa.Text),
            sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
            _score_check("ats_score"),
            _score_check("keyword_score"),
            _score_check("format_score"),
            _score_check("overall_score"),
        )
        op.create_index("ix_resume_grading_evaluation_id", "resume_grading", ["evaluation_id"], unique=True)
        op.create_index("ix_resume_grading_user_id", "resume_grading", ["user_id"])
        op.create_index("ix_resume_grading_job_title", "resume_grading", ["job_title"])
        op.create_index("ix_resume_grading_overall_score", "resume_grading", ["overall_score"])
        op.create_index("idx_resume_grading_user_score", "resume_grading", ["user_id", "overall_score"])


def downgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    if insp.has_table("resume_grading"):
        op.drop_table("resume_grading")
    if insp.has_table("resume_files"):
        op.drop_table("resume_files")
