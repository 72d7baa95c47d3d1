"""Initial schema

Revision ID: 3f1a9c2b7d10
Revises:
Create Date: 2026-10-19 09:12:44.102311

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2b7d10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum("USER", "LAWYER", "ADMIN", name="userrole")
verification_status = sa.Enum("PENDING", "UNDER_REVIEW", "VERIFIED", "REJECTED", name="verificationstatus")
booking_status = sa.Enum("PENDING", "CONFIRMED", "COMPLETED", "CANCELLED", "NO_SHOW", name="bookingstatus")
meeting_type = sa.Enum("VIDEO", "PHONE", "IN_PERSON", name="meetingtype")
payment_status = sa.Enum(
    "PENDING", "PROCESSING", "COMPLETED", "FAILED", "REFUNDED", "PARTIALLY_REFUNDED", name="paymentstatus"
)
payment_method = sa.Enum("CARD", "UPI", "NET_BANKING", "WALLET", name="paymentmethod")
case_status = sa.Enum(
    "REQUESTED", "OPEN", "IN_PROGRESS", "PENDING_DOCS", "UNDER_REVIEW", "CLOSED", "RESOLVED", "REJECTED",
    name="casestatus",
)
case_priority = sa.Enum("LOW", "MEDIUM", "HIGH", "URGENT", name="casepriority")
case_payment_status = sa.Enum("REQUESTED", "PROCESSING", "DENIED", "COMPLETED", "FAILED", name="casepaymentstatus")
message_type = sa.Enum("TEXT", "FILE", "IMAGE", "SYSTEM", name="messagetype")
document_type = sa.Enum("GENERAL", "ID_PROOF", "BAR_CERTIFICATE", "CASE_DOCUMENT", "AVATAR", name="documenttype")
audit_action = sa.Enum(
    "CREATE", "UPDATE", "DELETE", "STATUS_CHANGE", "DOCUMENT_ADDED", "DOCUMENT_REMOVED", "MESSAGE_SENT",
    "PAYMENT_MADE", "ASSIGNED", name="auditaction",
)
notification_type = sa.Enum(
    "BOOKING_CREATED", "BOOKING_CONFIRMED", "BOOKING_CANCELLED", "BOOKING_REMINDER", "PAYMENT_RECEIVED",
    "PAYMENT_REFUNDED", "PAYMENT_REQUESTED", "PAYMENT_REQUEST_RECEIVED", "REVIEW_RECEIVED", "PROFILE_VERIFIED",
    "MESSAGE_RECEIVED", "CASE", "SYSTEM", name="notificationtype",
)


def _id():
    return sa.Column("id", sa.String(36), primary_key=True)


def _user_fk(name="user_id", ondelete=None, nullable=False):
    return sa.Column(name, sa.String(36), sa.ForeignKey("users.id", ondelete=ondelete), nullable=nullable)


def upgrade():
    # Users & lawyers
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password", sa.String(255)),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(20)),
        sa.Column("avatar", sa.String(500)),
        sa.Column("role", user_role, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_email_verified", sa.Boolean(), nullable=False),
        sa.Column("email_verified_at", sa.DateTime()),
        sa.Column("google_id", sa.String(255), unique=True),
        sa.Column("last_login_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
        sa.Column("deleted_at", sa.DateTime()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "lawyers",
        _id(),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False),
        sa.Column("bar_council_id", sa.String(100), unique=True, nullable=False),
        sa.Column("bar_council_state", sa.String(100), nullable=False),
        sa.Column("enrollment_year", sa.Integer(), nullable=False),
        sa.Column("bio", sa.Text()),
        sa.Column("headline", sa.String(255)),
        sa.Column("experience", sa.Integer()),
        sa.Column("hourly_rate", sa.DECIMAL(10, 2), nullable=False),
        sa.Column("consultation_fee", sa.DECIMAL(10, 2)),
        sa.Column("currency", sa.String(3)),
        sa.Column("city", sa.String(100)),
        sa.Column("state", sa.String(100)),
        sa.Column("address", sa.Text()),
        sa.Column("languages", sa.JSON()),
        sa.Column("verification_status", verification_status, nullable=False),
        sa.Column("verified_at", sa.DateTime()),
        sa.Column("verified_by", sa.String(36)),
        sa.Column("rejection_reason", sa.Text()),
        sa.Column("is_available", sa.Boolean(), nullable=False),
        sa.Column("availability", sa.JSON()),
        sa.Column("total_bookings", sa.Integer(), nullable=False),
        sa.Column("completed_bookings", sa.Integer(), nullable=False),
        sa.Column("total_earnings", sa.DECIMAL(12, 2), nullable=False),
        sa.Column("average_rating", sa.Float()),
        sa.Column("total_reviews", sa.Integer(), nullable=False),
        sa.Column("slug", sa.String(255)),
        sa.Column("featured", sa.Boolean()),
        sa.Column("bank_account_name", sa.String(255)),
        sa.Column("bank_account_number", sa.String(50)),
        sa.Column("bank_ifsc_code", sa.String(20)),
        sa.Column("upi_id", sa.String(100)),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    )
    op.create_index("ix_lawyers_city", "lawyers", ["city"])
    op.create_index("ix_lawyers_state", "lawyers", ["state"])
    op.create_index("ix_lawyers_verification_status", "lawyers", ["verification_status"])
    op.create_index("ix_lawyers_slug", "lawyers", ["slug"], unique=True)

    op.create_table(
        "practice_areas",
        _id(),
        sa.Column("name", sa.String(100), unique=True, nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("icon", sa.String(100)),
        sa.Column("display_order", sa.Integer()),
        sa.Column("is_active", sa.Boolean()),
        sa.Column("created_at", sa.DateTime()),
    )
    op.create_index("ix_practice_areas_slug", "practice_areas", ["slug"], unique=True)

    op.create_table(
        "lawyer_specializations",
        _id(),
        sa.Column("lawyer_id", sa.String(36), sa.ForeignKey("lawyers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("practice_area_id", sa.String(36), sa.ForeignKey("practice_areas.id"), nullable=False),
        sa.Column("is_primary", sa.Boolean()),
        sa.UniqueConstraint("lawyer_id", "practice_area_id"),
    )
    op.create_index("ix_lawyer_specializations_lawyer_id", "lawyer_specializations", ["lawyer_id"])
    op.create_index("ix_lawyer_specializations_practice_area_id", "lawyer_specializations", ["practice_area_id"])

    op.create_table(
        "saved_lawyers",
        _id(),
        _user_fk(ondelete="CASCADE"),
        sa.Column("lawyer_id", sa.String(36), sa.ForeignKey("lawyers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime()),
        sa.UniqueConstraint("user_id", "lawyer_id"),
    )
    op.create_index("ix_saved_lawyers_user_id", "saved_lawyers", ["user_id"])
    op.create_index("ix_saved_lawyers_lawyer_id", "saved_lawyers", ["lawyer_id"])

    op.create_table(
        "blocked_periods",
        _id(),
        sa.Column("lawyer_id", sa.String(36), sa.ForeignKey("lawyers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=False),
        sa.Column("reason", sa.Text()),
        sa.Column("created_at", sa.DateTime()),
    )
    op.create_index("ix_blocked_periods_lawyer_start", "blocked_periods", ["lawyer_id", "start_date"])

    # Bookings & payments
    op.create_table(
        "bookings",
        _id(),
        sa.Column("booking_number", sa.String(30), unique=True, nullable=False),
        _user_fk("client_id"),
        sa.Column("lawyer_id", sa.String(36), sa.ForeignKey("lawyers.id"), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("scheduled_time", sa.String(5), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("timezone", sa.String(50)),
        sa.Column("status", booking_status, nullable=False),
        sa.Column("confirmed_at", sa.DateTime()),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("cancelled_at", sa.DateTime()),
        sa.Column("cancelled_by", sa.String(36)),
        sa.Column("cancellation_reason", sa.Text()),
        sa.Column("meeting_type", meeting_type),
        sa.Column("meeting_link", sa.String(500)),
        sa.Column("amount", sa.DECIMAL(10, 2), nullable=False),
        sa.Column("currency", sa.String(3)),
        sa.Column("client_notes", sa.Text()),
        sa.Column("lawyer_notes", sa.Text()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
        sa.UniqueConstraint("lawyer_id", "scheduled_date", "scheduled_time", name="unique_lawyer_slot"),
    )
    op.create_index("ix_bookings_client_id", "bookings", ["client_id"])
    op.create_index("ix_bookings_lawyer_id", "bookings", ["lawyer_id"])
    op.create_index("ix_bookings_scheduled_date", "bookings", ["scheduled_date"])
    op.create_index("ix_bookings_status", "bookings", ["status"])

    op.create_table(
        "payments",
        _id(),
        sa.Column("booking_id", sa.String(36), sa.ForeignKey("bookings.id"), unique=True, nullable=False),
        _user_fk(),
        sa.Column("amount", sa.DECIMAL(10, 2), nullable=False),
        sa.Column("currency", sa.String(3)),
        sa.Column("status", payment_status, nullable=False),
        sa.Column("method", payment_method),
        sa.Column("gateway_order_id", sa.String(100), unique=True),
        sa.Column("gateway_payment_id", sa.String(100), unique=True),
        sa.Column("gateway_signature", sa.String(255)),
        sa.Column("failure_reason", sa.Text()),
        sa.Column("processed_at", sa.DateTime()),
        sa.Column("refund_amount", sa.DECIMAL(10, 2)),
        sa.Column("refund_reason", sa.Text()),
        sa.Column("refunded_at", sa.DateTime()),
        sa.Column("gateway_refund_id", sa.String(100)),
        sa.Column("metadata", sa.JSON()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    )
    op.create_index("ix_payments_user_id", "payments", ["user_id"])
    op.create_index("ix_payments_status", "payments", ["status"])

    op.create_table(
        "reviews",
        _id(),
        sa.Column("booking_id", sa.String(36), sa.ForeignKey("bookings.id"), unique=True, nullable=False),
        _user_fk(),
        sa.Column("lawyer_id", sa.String(36), sa.ForeignKey("lawyers.id"), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255)),
        sa.Column("content", sa.Text()),
        sa.Column("is_verified", sa.Boolean()),
        sa.Column("is_published", sa.Boolean()),
        sa.Column("is_hidden", sa.Boolean()),
        sa.Column("lawyer_response", sa.Text()),
        sa.Column("responded_at", sa.DateTime()),
        sa.Column("helpful_count", sa.Integer()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    )
    op.create_index("ix_reviews_user_id", "reviews", ["user_id"])
    op.create_index("ix_reviews_lawyer_id", "reviews", ["lawyer_id"])

    # Cases, chat & case payments
    op.create_table(
        "cases",
        _id(),
        sa.Column("case_number", sa.String(50), unique=True, nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("status", case_status, nullable=False),
        sa.Column("priority", case_priority, nullable=False),
        _user_fk("client_id"),
        sa.Column("lawyer_id", sa.String(36), sa.ForeignKey("lawyers.id"), nullable=False),
        sa.Column("booking_id", sa.String(36), sa.ForeignKey("bookings.id", ondelete="SET NULL"), unique=True),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
        sa.Column("closed_at", sa.DateTime()),
    )
    op.create_index("ix_cases_status", "cases", ["status"])
    op.create_index("ix_cases_client_id", "cases", ["client_id"])
    op.create_index("ix_cases_lawyer_id", "cases", ["lawyer_id"])
    op.create_index("ix_cases_created_at", "cases", ["created_at"])

    op.create_table(
        "messages",
        _id(),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("type", message_type, nullable=False),
        sa.Column("attachment_url", sa.String(500)),
        _user_fk("sender_id"),
        sa.Column("case_id", sa.String(36), sa.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("read_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime()),
    )
    op.create_index("ix_messages_sender_id", "messages", ["sender_id"])
    op.create_index("ix_messages_case_id", "messages", ["case_id"])
    op.create_index("ix_messages_created_at", "messages", ["created_at"])

    op.create_table(
        "case_payments",
        _id(),
        sa.Column("case_id", sa.String(36), sa.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount_in_paise", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", case_payment_status, nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("requested_by_lawyer_id", sa.String(36), sa.ForeignKey("lawyers.id"), nullable=False),
        sa.Column("razorpay_order_id", sa.String(100), unique=True),
        sa.Column("razorpay_payment_id", sa.String(100), unique=True),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    )
    op.create_index("ix_case_payments_case_id", "case_payments", ["case_id"])
    op.create_index("ix_case_payments_status", "case_payments", ["status"])

    op.create_table(
        "audit_logs",
        _id(),
        sa.Column("action", audit_action, nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        _user_fk(),
        sa.Column("case_id", sa.String(36), sa.ForeignKey("cases.id", ondelete="SET NULL")),
        sa.Column("details", sa.JSON()),
        sa.Column("created_at", sa.DateTime()),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_case_id", "audit_logs", ["case_id"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])

    # Documents & notifications
    op.create_table(
        "documents",
        _id(),
        _user_fk(),
        sa.Column("case_id", sa.String(36), sa.ForeignKey("cases.id", ondelete="SET NULL")),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("original_name", sa.String(255), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("size", sa.Integer(), nullable=False),
        sa.Column("type", document_type, nullable=False),
        sa.Column("storage_path", sa.String(500), nullable=False),
        sa.Column("storage_url", sa.String(1000)),
        sa.Column("description", sa.Text()),
        sa.Column("is_public", sa.Boolean()),
        sa.Column("shared_with", sa.JSON()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
        sa.Column("deleted_at", sa.DateTime()),
    )
    op.create_index("ix_documents_user_id", "documents", ["user_id"])
    op.create_index("ix_documents_case_id", "documents", ["case_id"])

    op.create_table(
        "notifications",
        _id(),
        _user_fk(ondelete="CASCADE"),
        sa.Column("type", notification_type, nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("action_url", sa.String(500)),
        sa.Column("action_label", sa.String(100)),
        sa.Column("metadata", sa.JSON()),
        sa.Column("is_read", sa.Boolean()),
        sa.Column("read_at", sa.DateTime()),
        sa.Column("expires_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime()),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_is_read", "notifications", ["is_read"])

    # Auth tokens
    op.create_table(
        "refresh_tokens",
        _id(),
        sa.Column("token", sa.String(1000), unique=True, nullable=False),
        _user_fk(ondelete="CASCADE"),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("revoked_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime()),
    )
    op.create_index("ix_refresh_tokens_user_id", "refresh_tokens", ["user_id"])

    for table in ("password_reset_tokens", "email_verification_tokens"):
        op.create_table(
            table,
            _id(),
            sa.Column("token", sa.String(255), unique=True, nullable=False),
            _user_fk(ondelete="CASCADE"),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            sa.Column("used_at", sa.DateTime()),
            sa.Column("created_at", sa.DateTime()),
        )

    # Analytics
    op.create_table(
        "page_views",
        _id(),
        sa.Column("user_id", sa.String(36)),
        sa.Column("session_id", sa.String(100), nullable=False),
        sa.Column("path", sa.String(500), nullable=False),
        sa.Column("referrer", sa.String(500)),
        sa.Column("user_agent", sa.String(500)),
        sa.Column("ip", sa.String(64)),
        sa.Column("device", sa.String(20)),
        sa.Column("browser", sa.String(50)),
        sa.Column("os", sa.String(50)),
        sa.Column("duration", sa.Integer()),
        sa.Column("timestamp", sa.DateTime()),
    )
    for column in ("user_id", "session_id", "path", "timestamp"):
        op.create_index(f"ix_page_views_{column}", "page_views", [column])

    op.create_table(
        "analytics_events",
        _id(),
        sa.Column("user_id", sa.String(36)),
        sa.Column("session_id", sa.String(100)),
        sa.Column("event", sa.String(100), nullable=False),
        sa.Column("category", sa.String(100)),
        sa.Column("properties", sa.JSON()),
        sa.Column("timestamp", sa.DateTime()),
    )
    for column in ("user_id", "event", "category", "timestamp"):
        op.create_index(f"ix_analytics_events_{column}", "analytics_events", [column])

    op.create_table(
        "search_logs",
        _id(),
        sa.Column("user_id", sa.String(36)),
        sa.Column("query", sa.String(500), nullable=False),
        sa.Column("filters", sa.JSON()),
        sa.Column("results_count", sa.Integer()),
        sa.Column("selected_result_id", sa.String(36)),
        sa.Column("selected_result_position", sa.Integer()),
        sa.Column("timestamp", sa.DateTime()),
    )
    op.create_index("ix_search_logs_timestamp", "search_logs", ["timestamp"])

    op.create_table(
        "api_logs",
        _id(),
        sa.Column("request_id", sa.String(64)),
        sa.Column("user_id", sa.String(36)),
        sa.Column("method", sa.String(10), nullable=False),
        sa.Column("path", sa.String(500), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=False),
        sa.Column("duration_ms", sa.Integer()),
        sa.Column("ip", sa.String(64)),
        sa.Column("user_agent", sa.String(500)),
        sa.Column("error", sa.Text()),
        sa.Column("timestamp", sa.DateTime()),
    )
    for column in ("path", "status_code", "timestamp"):
        op.create_index(f"ix_api_logs_{column}", "api_logs", [column])


def downgrade():
    for table in (
        "api_logs", "search_logs", "analytics_events", "page_views",
        "email_verification_tokens", "password_reset_tokens", "refresh_tokens",
        "notifications", "documents", "audit_logs", "case_payments", "messages", "cases",
        "reviews", "payments", "bookings", "blocked_periods", "saved_lawyers",
        "lawyer_specializations", "practice_areas", "lawyers", "users",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum in (
        notification_type, audit_action, document_type, message_type, case_payment_status, case_priority,
        case_status, payment_method, payment_status, meeting_type, booking_status, verification_status, user_role,
    ):
        enum.drop(bind, checkfirst=True)
