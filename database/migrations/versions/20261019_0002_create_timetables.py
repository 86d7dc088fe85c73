"""create timetables, enrollments and activity logs

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


timetable_status_enum = sa.Enum("draft", "published", "archived", name="timetable_status")
enrollment_status_enum = sa.Enum("enrolled", "dropped", name="enrollment_status")


def upgrade() -> None:
    op.create_table(
        "timetables",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("semester", sa.Integer(), nullable=True),
        sa.Column("academic_year", sa.String(length=20), nullable=True),
        sa.Column("status", timetable_status_enum, nullable=False),
        sa.Column("catalog_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("summary", sa.JSON(), nullable=False),
        sa.Column("created_by_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "uq_timetables_single_published",
        "timetables",
        ["status"],
        unique=True,
        sqlite_where=sa.text("status = 'published'"),
        postgresql_where=sa.text("status = 'published'"),
    )

    op.create_table(
        "timetable_slots",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "timetable_id",
            sa.String(length=36),
            sa.ForeignKey("timetables.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("subject_code", sa.String(length=50), nullable=False),
        sa.Column("subject_name", sa.String(length=200), nullable=False),
        sa.Column("session_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("session_type", sa.String(length=20), nullable=False),
        sa.Column("day", sa.Integer(), nullable=False),
        sa.Column("period", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("room_code", sa.String(length=50), nullable=False),
        sa.Column("building", sa.String(length=200), nullable=True),
        sa.Column("faculty_id", sa.String(length=36), nullable=False),
        sa.Column("faculty_name", sa.String(length=200), nullable=False),
        sa.UniqueConstraint("timetable_id", "day", "period", "room_code", name="uq_timetable_slots_room"),
        sa.UniqueConstraint("timetable_id", "day", "period", "faculty_id", name="uq_timetable_slots_faculty"),
    )
    op.create_index("ix_timetable_slots_timetable_id", "timetable_slots", ["timetable_id"])
    op.create_index("ix_timetable_slots_subject_code", "timetable_slots", ["subject_code"])
    op.create_index("ix_timetable_slots_faculty_id", "timetable_slots", ["faculty_id"])

    op.create_table(
        "student_enrollments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("student_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("subject_id", sa.String(length=36), sa.ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", enrollment_status_enum, nullable=False),
        sa.Column("enrolled_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("student_id", "subject_id", name="uq_student_enrollments_student_subject"),
    )
    op.create_index("ix_student_enrollments_student_id", "student_enrollments", ["student_id"])
    op.create_index("ix_student_enrollments_subject_id", "student_enrollments", ["subject_id"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_entity", "activity_logs", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_index("ix_activity_logs_entity", table_name="activity_logs")
    op.drop_index("ix_activity_logs_action", table_name="activity_logs")
    op.drop_index("ix_activity_logs_user_id", table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_index("ix_student_enrollments_subject_id", table_name="student_enrollments")
    op.drop_index("ix_student_enrollments_student_id", table_name="student_enrollments")
    op.drop_table("student_enrollments")
    op.drop_index("ix_timetable_slots_faculty_id", table_name="timetable_slots")
    op.drop_index("ix_timetable_slots_subject_code", table_name="timetable_slots")
    op.drop_index("ix_timetable_slots_timetable_id", table_name="timetable_slots")
    op.drop_table("timetable_slots")
    op.drop_index("uq_timetables_single_published", table_name="timetables")
    op.drop_table("timetables")
    bind = op.get_bind()
    enrollment_status_enum.drop(bind, checkfirst=True)
    timetable_status_enum.drop(bind, checkfirst=True)
