"""Core enums used across modules."""

from enum import StrEnum


class RoleEnum(StrEnum):
    """System roles."""

    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


class BookingStatusEnum(StrEnum):
    """Booking lifecycle status."""

    PENDING = "pending"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class CreditOperationEnum(StrEnum):
    """Credit ledger operation type."""

    ADD = "add"
    DEDUCT = "deduct"
    REFUND = "refund"


class MessageStatusEnum(StrEnum):
    """Chat message moderation status."""

    PENDING_MODERATION = "pending_moderation"
    DELIVERED = "delivered"
    BLOCKED = "blocked"


class CancelResultEnum(StrEnum):
    """Outcome of a booking cancellation request."""

    SUCCESS = "success"
    ALREADY_CANCELLED = "already_cancelled"
