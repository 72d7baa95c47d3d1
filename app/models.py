from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, Enum, Float, Date, DECIMAL, JSON, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from app.database import Base
import enum
import uuid


def generate_uuid():
    return str(uuid.uuid4())

# =====================================================
# ENUMS
# =====================================================

class UserRole(str, enum.Enum):
    USER = "USER"
    LAWYER = "LAWYER"
    ADMIN = "ADMIN"

class VerificationStatus(str, enum.Enum):
    PENDING = "PENDING"
    UNDER_REVIEW = "UNDER_REVIEW"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"

class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"

class MeetingType(str, enum.Enum):
    VIDEO = "VIDEO"
    PHONE = "PHONE"
    IN_PERSON = "IN_PERSON"

class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"

class PaymentMethod(str, enum.Enum):
    CARD = "CARD"
    UPI = "UPI"
    NET_BANKING = "NET_BANKING"
    WALLET = "WALLET"

class CaseStatus(str, enum.Enum):
    REQUESTED = "REQUESTED"
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    PENDING_DOCS = "PENDING_DOCS"
    UNDER_REVIEW = "UNDER_REVIEW"
    CLOSED = "CLOSED"
    RESOLVED = "RESOLVED"
    REJECTED = "REJECTED"

class CasePriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"

class CasePaymentStatus(str, enum.Enum):
    REQUESTED = "REQUESTED"
    PROCESSING = "PROCESSING"
    DENIED = "DENIED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

class MessageType(str, enum.Enum):
    TEXT = "TEXT"
    FILE = "FILE"
    IMAGE = "IMAGE"
    SYSTEM = "SYSTEM"

class DocumentType(str, enum.Enum):
    GENERAL = "GENERAL"
    ID_PROOF = "ID_PROOF"
    BAR_CERTIFICATE = "BAR_CERTIFICATE"
    CASE_DOCUMENT = "CASE_DOCUMENT"
    AVATAR = "AVATAR"

class AuditAction(str, enum.Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    STATUS_CHANGE = "STATUS_CHANGE"
    DOCUMENT_ADDED = "DOCUMENT_ADDED"
    DOCUMENT_REMOVED = "DOCUMENT_REMOVED"
    MESSAGE_SENT = "MESSAGE_SENT"
    PAYMENT_MADE = "PAYMENT_MADE"
    ASSIGNED = "ASSIGNED"

class NotificationType(str, enum.Enum):
    BOOKING_CREATED = "BOOKING_CREATED"
    BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    BOOKING_REMINDER = "BOOKING_REMINDER"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    PAYMENT_REFUNDED = "PAYMENT_REFUNDED"
    PAYMENT_REQUESTED = "PAYMENT_REQUESTED"
    PAYMENT_REQUEST_RECEIVED = "PAYMENT_REQUEST_RECEIVED"
    REVIEW_RECEIVED = "REVIEW_RECEIVED"
    PROFILE_VERIFIED = "PROFILE_VERIFIED"
    MESSAGE_RECEIVED = "MESSAGE_RECEIVED"
    CASE = "CASE"
    SYSTEM = "SYSTEM"

# =====================================================
# USERS & LAWYERS
# =====================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password = Column(String(255))  # Null for Google-only accounts
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(20))
    avatar = Column(String(500))
    role = Column(Enum(UserRole), nullable=False, default=UserRole.USER, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_email_verified = Column(Boolean, default=False, nullable=False)
    email_verified_at = Column(DateTime)
    google_id = Column(String(255), unique=True)
    last_login_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime)

    # Relationships
    lawyer = relationship("Lawyer", back_populates="user", uselist=False, cascade="all, delete-orphan")
    bookings = relationship("Booking", back_populates="client", foreign_keys="Booking.client_id")
    payments = relationship("Payment", back_populates="user")
    reviews = relationship("Review", back_populates="user")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")
    documents = relationship("Document", back_populates="user")
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")
    password_reset_tokens = relationship("PasswordResetToken", cascade="all, delete-orphan")
    email_verification_tokens = relationship("EmailVerificationToken", cascade="all, delete-orphan")
    saved_lawyers = relationship("SavedLawyer", back_populates="user", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Lawyer(Base):
    __tablename__ = "lawyers"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    bar_council_id = Column(String(100), unique=True, nullable=False)
    bar_council_state = Column(String(100), nullable=False)
    enrollment_year = Column(Integer, nullable=False)
    bio = Column(Text)
    headline = Column(String(255))
    experience = Column(Integer, default=0)
    hourly_rate = Column(DECIMAL(10, 2), nullable=False, default=0)
    consultation_fee = Column(DECIMAL(10, 2))
    currency = Column(String(3), default="INR")
    city = Column(String(100), index=True)
    state = Column(String(100), index=True)
    address = Column(Text)
    languages = Column(JSON, default=list)

    verification_status = Column(Enum(VerificationStatus), default=VerificationStatus.PENDING, nullable=False, index=True)
    verified_at = Column(DateTime)
    verified_by = Column(String(36))
    rejection_reason = Column(Text)

    is_available = Column(Boolean, default=True, nullable=False)
    availability = Column(JSON)  # {"monday": {"enabled": true, "start": "09:00", "end": "18:00"}, ...}

    total_bookings = Column(Integer, default=0, nullable=False)
    completed_bookings = Column(Integer, default=0, nullable=False)
    total_earnings = Column(DECIMAL(12, 2), default=0, nullable=False)
    average_rating = Column(Float, default=0)
    total_reviews = Column(Integer, default=0, nullable=False)

    slug = Column(String(255), unique=True, index=True)
    featured = Column(Boolean, default=False)

    # Payout credentials
    bank_account_name = Column(String(255))
    bank_account_number = Column(String(50))
    bank_ifsc_code = Column(String(20))
    upi_id = Column(String(100))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="lawyer")
    specializations = relationship("LawyerSpecialization", back_populates="lawyer", cascade="all, delete-orphan")
    bookings = relationship("Booking", back_populates="lawyer")
    reviews = relationship("Review", back_populates="lawyer")
    cases = relationship("Case", back_populates="lawyer")
    blocked_periods = relationship("BlockedPeriod", back_populates="lawyer", cascade="all, delete-orphan")


class PracticeArea(Base):
    __tablename__ = "practice_areas"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(100), unique=True, nullable=False)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(Text)
    icon = Column(String(100))
    display_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    lawyers = relationship("LawyerSpecialization", back_populates="practice_area")


class LawyerSpecialization(Base):
    __tablename__ = "lawyer_specializations"
    __table_args__ = (UniqueConstraint("lawyer_id", "practice_area_id"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    lawyer_id = Column(String(36), ForeignKey("lawyers.id", ondelete="CASCADE"), nullable=False, index=True)
    practice_area_id = Column(String(36), ForeignKey("practice_areas.id"), nullable=False, index=True)
    is_primary = Column(Boolean, default=False)

    lawyer = relationship("Lawyer", back_populates="specializations")
    practice_area = relationship("PracticeArea", back_populates="lawyers")


class SavedLawyer(Base):
    __tablename__ = "saved_lawyers"
    __table_args__ = (UniqueConstraint("user_id", "lawyer_id"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    lawyer_id = Column(String(36), ForeignKey("lawyers.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="saved_lawyers")
    lawyer = relationship("Lawyer")


class BlockedPeriod(Base):
    __tablename__ = "blocked_periods"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    lawyer_id = Column(String(36), ForeignKey("lawyers.id", ondelete="CASCADE"), nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    reason = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    lawyer = relationship("Lawyer", back_populates="blocked_periods")

    __table_args__ = (Index("ix_blocked_periods_lawyer_start", "lawyer_id", "start_date"),)

# =====================================================
# BOOKINGS & PAYMENTS
# =====================================================

class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        UniqueConstraint("lawyer_id", "scheduled_date", "scheduled_time", name="unique_lawyer_slot"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    booking_number = Column(String(30), unique=True, nullable=False)
    client_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    lawyer_id = Column(String(36), ForeignKey("lawyers.id"), nullable=False, index=True)
    scheduled_date = Column(Date, nullable=False, index=True)
    scheduled_time = Column(String(5), nullable=False)  # HH:MM
    duration = Column(Integer, nullable=False, default=60)
    timezone = Column(String(50), default="Asia/Kolkata")
    status = Column(Enum(BookingStatus), default=BookingStatus.PENDING, nullable=False, index=True)
    confirmed_at = Column(DateTime)
    completed_at = Column(DateTime)
    cancelled_at = Column(DateTime)
    cancelled_by = Column(String(36))
    cancellation_reason = Column(Text)
    meeting_type = Column(Enum(MeetingType), default=MeetingType.VIDEO)
    meeting_link = Column(String(500))
    amount = Column(DECIMAL(10, 2), nullable=False)
    currency = Column(String(3), default="INR")
    client_notes = Column(Text)
    lawyer_notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    client = relationship("User", back_populates="bookings", foreign_keys=[client_id])
    lawyer = relationship("Lawyer", back_populates="bookings")
    payment = relationship("Payment", back_populates="booking", uselist=False)
    review = relationship("Review", back_populates="booking", uselist=False)
    case = relationship("Case", back_populates="booking", uselist=False)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    booking_id = Column(String(36), ForeignKey("bookings.id"), unique=True, nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(DECIMAL(10, 2), nullable=False)
    currency = Column(String(3), default="INR")
    status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False, index=True)
    method = Column(Enum(PaymentMethod))
    gateway_order_id = Column(String(100), unique=True)
    gateway_payment_id = Column(String(100), unique=True)
    gateway_signature = Column(String(255))
    failure_reason = Column(Text)
    processed_at = Column(DateTime)
    refund_amount = Column(DECIMAL(10, 2))
    refund_reason = Column(Text)
    refunded_at = Column(DateTime)
    gateway_refund_id = Column(String(100))
    payment_metadata = Column("metadata", JSON)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    booking = relationship("Booking", back_populates="payment")
    user = relationship("User", back_populates="payments")


class Review(Base):
    __tablename__ = "reviews"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    booking_id = Column(String(36), ForeignKey("bookings.id"), unique=True, nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    lawyer_id = Column(String(36), ForeignKey("lawyers.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    title = Column(String(255))
    content = Column(Text)
    is_verified = Column(Boolean, default=False)
    is_published = Column(Boolean, default=True)
    is_hidden = Column(Boolean, default=False)
    lawyer_response = Column(Text)
    responded_at = Column(DateTime)
    helpful_count = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    booking = relationship("Booking", back_populates="review")
    user = relationship("User", back_populates="reviews")
    lawyer = relationship("Lawyer", back_populates="reviews")

# =====================================================
# CASES, CHAT & CASE PAYMENTS
# =====================================================

class Case(Base):
    __tablename__ = "cases"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_number = Column(String(50), unique=True, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    status = Column(Enum(CaseStatus), default=CaseStatus.OPEN, nullable=False, index=True)
    priority = Column(Enum(CasePriority), default=CasePriority.MEDIUM, nullable=False)
    client_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    lawyer_id = Column(String(36), ForeignKey("lawyers.id"), nullable=False, index=True)
    booking_id = Column(String(36), ForeignKey("bookings.id", ondelete="SET NULL"), unique=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    closed_at = Column(DateTime)

    # Relationships
    client = relationship("User", foreign_keys=[client_id])
    lawyer = relationship("Lawyer", back_populates="cases")
    booking = relationship("Booking", back_populates="case")
    messages = relationship("Message", back_populates="case", cascade="all, delete-orphan", order_by="Message.created_at")
    documents = relationship("Document", back_populates="case")
    case_payments = relationship("CasePayment", back_populates="case", cascade="all, delete-orphan")
    audit_logs = relationship("AuditLog", back_populates="case")


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    content = Column(Text, nullable=False)
    type = Column(Enum(MessageType), default=MessageType.TEXT, nullable=False)
    attachment_url = Column(String(500))
    sender_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    case = relationship("Case", back_populates="messages")
    sender = relationship("User")


class CasePayment(Base):
    __tablename__ = "case_payments"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    amount_in_paise = Column(Integer, nullable=False)
    currency = Column(String(3), default="INR", nullable=False)
    status = Column(Enum(CasePaymentStatus), default=CasePaymentStatus.REQUESTED, nullable=False, index=True)
    description = Column(Text, nullable=False)
    requested_by_lawyer_id = Column(String(36), ForeignKey("lawyers.id"), nullable=False)
    razorpay_order_id = Column(String(100), unique=True)
    razorpay_payment_id = Column(String(100), unique=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    case = relationship("Case", back_populates="case_payments")
    requested_by = relationship("Lawyer")


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_entity", "entity_type", "entity_id"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    action = Column(Enum(AuditAction), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(36), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="SET NULL"), index=True)
    details = Column(JSON)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    user = relationship("User")
    case = relationship("Case", back_populates="audit_logs")

# =====================================================
# DOCUMENTS & NOTIFICATIONS
# =====================================================

class Document(Base):
    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="SET NULL"), index=True)
    name = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    mime_type = Column(String(100), nullable=False)
    size = Column(Integer, nullable=False)
    type = Column(Enum(DocumentType), default=DocumentType.GENERAL, nullable=False)
    storage_path = Column(String(500), nullable=False)
    storage_url = Column(String(1000))
    description = Column(Text)
    is_public = Column(Boolean, default=False)
    shared_with = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime)

    user = relationship("User", back_populates="documents")
    case = relationship("Case", back_populates="documents")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(Enum(NotificationType), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    action_url = Column(String(500))
    action_label = Column(String(100))
    notification_metadata = Column("metadata", JSON)
    is_read = Column(Boolean, default=False, index=True)
    read_at = Column(DateTime)
    expires_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="notifications")

# =====================================================
# AUTH TOKENS
# =====================================================

class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    token = Column(String(1000), unique=True, nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="refresh_tokens")


class PasswordResetToken(Base):
    __tablename__ = "password_reset_tokens"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    token = Column(String(255), unique=True, nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)


class EmailVerificationToken(Base):
    __tablename__ = "email_verification_tokens"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    token = Column(String(255), unique=True, nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)

# =====================================================
# ANALYTICS
# =====================================================

class PageView(Base):
    __tablename__ = "page_views"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), index=True)
    session_id = Column(String(100), nullable=False, index=True)
    path = Column(String(500), nullable=False, index=True)
    referrer = Column(String(500))
    user_agent = Column(String(500))
    ip = Column(String(64))
    device = Column(String(20))
    browser = Column(String(50))
    os = Column(String(50))
    duration = Column(Integer)  # seconds
    timestamp = Column(DateTime, default=datetime.utcnow, index=True)


class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), index=True)
    session_id = Column(String(100))
    event = Column(String(100), nullable=False, index=True)
    category = Column(String(100), index=True)
    properties = Column(JSON)
    timestamp = Column(DateTime, default=datetime.utcnow, index=True)


class SearchLog(Base):
    __tablename__ = "search_logs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36))
    query = Column(String(500), nullable=False)
    filters = Column(JSON)
    results_count = Column(Integer)
    selected_result_id = Column(String(36))
    selected_result_position = Column(Integer)
    timestamp = Column(DateTime, default=datetime.utcnow, index=True)


class ApiLog(Base):
    __tablename__ = "api_logs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    request_id = Column(String(64))
    user_id = Column(String(36))
    method = Column(String(10), nullable=False)
    path = Column(String(500), nullable=False, index=True)
    status_code = Column(Integer, nullable=False, index=True)
    duration_ms = Column(Integer)
    ip = Column(String(64))
    user_agent = Column(String(500))
    error = Column(Text)
    timestamp = Column(DateTime, default=datetime.utcnow, index=True)
