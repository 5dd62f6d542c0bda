"""Initial schema

Revision ID: 20261016_0001
Revises:
Create Date: 2026-10-16 09:30:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261016_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


role_enum = sa.Enum("STUDENT", "TEACHER", "ADMIN", name="role_enum", native_enum=False)
booking_status_enum = sa.Enum(
    "PENDING",
    "ACTIVE",
    "CANCELLED",
    "COMPLETED",
    name="booking_status_enum",
    native_enum=False,
)
credit_operation_enum = sa.Enum("ADD", "DEDUCT", "REFUND", name="credit_operation_enum", native_enum=False)
message_status_enum = sa.Enum(
    "PENDING_MODERATION",
    "DELIVERED",
    "BLOCKED",
    name="message_status_enum",
    native_enum=False,
)


def _id_col() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _created_col() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def _updated_col() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False)


def _deleted_col() -> sa.Column:
    return sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True)


def upgrade() -> None:
    op.create_table(
        "users",
        _id_col(),
        _created_col(),
        _updated_col(),
        _deleted_col(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("role", role_enum, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=False)
    op.create_index("ix_users_role", "users", ["role"], unique=False)

    op.create_table(
        "lessons",
        _id_col(),
        _created_col(),
        _updated_col(),
        _deleted_col(),
        sa.Column("teacher_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("subject", sa.String(length=255), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("current_students", sa.Integer(), nullable=False),
        sa.Column("credits_cost", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["teacher_id"], ["users.id"], name="fk_lessons_teacher_id_users", ondelete="RESTRICT"),
        sa.CheckConstraint("capacity >= 1", name="ck_lessons_capacity_positive"),
        sa.CheckConstraint("current_students >= 0", name="ck_lessons_current_students_non_negative"),
        sa.CheckConstraint("current_students <= capacity", name="ck_lessons_current_students_within_capacity"),
        sa.CheckConstraint("credits_cost >= 0", name="ck_lessons_credits_cost_non_negative"),
        sa.CheckConstraint("end_time > start_time", name="ck_lessons_end_after_start"),
    )
    op.create_index("ix_lessons_teacher_id", "lessons", ["teacher_id"], unique=False)
    op.create_index("ix_lessons_start_time", "lessons", ["start_time"], unique=False)
    op.create_index("ix_lessons_end_time", "lessons", ["end_time"], unique=False)

    op.create_table(
        "bookings",
        _id_col(),
        _created_col(),
        _updated_col(),
        _deleted_col(),
        sa.Column("student_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("lesson_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", booking_status_enum, nullable=False),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(length=512), nullable=True),
        sa.ForeignKeyConstraint(["student_id"], ["users.id"], name="fk_bookings_student_id_users", ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["lesson_id"], ["lessons.id"], name="fk_bookings_lesson_id_lessons", ondelete="RESTRICT"),
    )
    op.create_index("ix_bookings_student_id", "bookings", ["student_id"], unique=False)
    op.create_index("ix_bookings_lesson_id", "bookings", ["lesson_id"], unique=False)
    op.create_index("ix_bookings_status", "bookings", ["status"], unique=False)
    op.create_index("ix_bookings_lesson_id_status", "bookings", ["lesson_id", "status"], unique=False)
    op.create_index(
        "uq_bookings_open_student_lesson",
        "bookings",
        ["student_id", "lesson_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('PENDING', 'ACTIVE') AND deleted_at IS NULL"),
    )

    op.create_table(
        "credits",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("balance", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_credits_user_id_users", ondelete="RESTRICT"),
        sa.UniqueConstraint("user_id", name="uq_credits_user_id"),
        sa.CheckConstraint("balance >= 0", name="ck_credits_balance_non_negative"),
    )

    op.create_table(
        "credit_transactions",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("operation_type", credit_operation_enum, nullable=False),
        sa.Column("reason", sa.String(length=500), nullable=False),
        sa.Column("performed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("balance_before", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("entry_no", sa.BigInteger(), sa.Identity(always=False), nullable=False),
        sa.UniqueConstraint("entry_no", name="uq_credit_transactions_entry_no"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_credit_transactions_user_id_users",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["performed_by"],
            ["users.id"],
            name="fk_credit_transactions_performed_by_users",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["booking_id"],
            ["bookings.id"],
            name="fk_credit_transactions_booking_id_bookings",
            ondelete="SET NULL",
        ),
    )
    op.create_index("ix_credit_transactions_user_id", "credit_transactions", ["user_id"], unique=False)
    op.create_index("ix_credit_transactions_operation_type", "credit_transactions", ["operation_type"], unique=False)
    op.create_index("ix_credit_transactions_booking_id", "credit_transactions", ["booking_id"], unique=False)
    op.create_index(
        "ix_credit_transactions_user_id_created_at",
        "credit_transactions",
        ["user_id", "created_at"],
        unique=False,
    )
    op.create_index(
        "uq_credit_transactions_refund_booking_id",
        "credit_transactions",
        ["booking_id"],
        unique=True,
        postgresql_where=sa.text("operation_type = 'REFUND'"),
    )

    op.create_table(
        "chat_rooms",
        _id_col(),
        _created_col(),
        _updated_col(),
        _deleted_col(),
        sa.Column("teacher_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("student_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["teacher_id"], ["users.id"], name="fk_chat_rooms_teacher_id_users", ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["student_id"], ["users.id"], name="fk_chat_rooms_student_id_users", ondelete="RESTRICT"),
        sa.UniqueConstraint("teacher_id", "student_id", name="uq_chat_rooms_teacher_id_student_id"),
    )
    op.create_index("ix_chat_rooms_teacher_id", "chat_rooms", ["teacher_id"], unique=False)
    op.create_index("ix_chat_rooms_student_id", "chat_rooms", ["student_id"], unique=False)

    op.create_table(
        "messages",
        _id_col(),
        _created_col(),
        _updated_col(),
        _deleted_col(),
        sa.Column("room_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("sender_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("status", message_status_enum, nullable=False),
        sa.ForeignKeyConstraint(["room_id"], ["chat_rooms.id"], name="fk_messages_room_id_chat_rooms", ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["sender_id"], ["users.id"], name="fk_messages_sender_id_users", ondelete="RESTRICT"),
    )
    op.create_index("ix_messages_room_id", "messages", ["room_id"], unique=False)
    op.create_index("ix_messages_sender_id", "messages", ["sender_id"], unique=False)
    op.create_index("ix_messages_status", "messages", ["status"], unique=False)

    op.create_table(
        "audit_logs",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=128), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=True),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.ForeignKeyConstraint(["actor_id"], ["users.id"], name="fk_audit_logs_actor_id_users", ondelete="SET NULL"),
    )
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"], unique=False)
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_index("ix_audit_logs_actor_id", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_messages_status", table_name="messages")
    op.drop_index("ix_messages_sender_id", table_name="messages")
    op.drop_index("ix_messages_room_id", table_name="messages")
    op.drop_table("messages")

    op.drop_index("ix_chat_rooms_student_id", table_name="chat_rooms")
    op.drop_index("ix_chat_rooms_teacher_id", table_name="chat_rooms")
    op.drop_table("chat_rooms")

    op.drop_index("uq_credit_transactions_refund_booking_id", table_name="credit_transactions")
    op.drop_index("ix_credit_transactions_user_id_created_at", table_name="credit_transactions")
    op.drop_index("ix_credit_transactions_booking_id", table_name="credit_transactions")
    op.drop_index("ix_credit_transactions_operation_type", table_name="credit_transactions")
    op.drop_index("ix_credit_transactions_user_id", table_name="credit_transactions")
    op.drop_table("credit_transactions")

    op.drop_table("credits")

    op.drop_index("uq_bookings_open_student_lesson", table_name="bookings")
    op.drop_index("ix_bookings_lesson_id_status", table_name="bookings")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_lesson_id", table_name="bookings")
    op.drop_index("ix_bookings_student_id", table_name="bookings")
    op.drop_table("bookings")

    op.drop_index("ix_lessons_end_time", table_name="lessons")
    op.drop_index("ix_lessons_start_time", table_name="lessons")
    op.drop_index("ix_lessons_teacher_id", table_name="lessons")
    op.drop_table("lessons")

    op.drop_index("ix_users_role", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
