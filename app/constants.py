BOOKING_DURATIONS = [30, 45, 60, 90, 120]
DEFAULT_BOOKING_DURATION = 60
DEFAULT_TIMEZONE = "Asia/Kolkata"

# Bookings that hold a slot
ACTIVE_BOOKING_STATUSES = ["PENDING", "CONFIRMED"]

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
MAX_AVATAR_SIZE = 5 * 1024 * 1024  # 5MB

ALLOWED_IMAGE_TYPES = ["image/jpeg", "image/png", "image/webp"]
ALLOWED_DOCUMENT_TYPES = [
    "image/jpeg",
    "image/png",
    "image/webp",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
]

SIGNED_URL_EXPIRY_SECONDS = 3600
REVIEW_EDIT_WINDOW_HOURS = 48
MIN_REVIEW_RESPONSE_LENGTH = 10

EMAIL_VERIFICATION_EXPIRY_HOURS = 24
PASSWORD_RESET_EXPIRY_HOURS = 1

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100

MEETING_BASE_URL = "https://meet.jit.si"
