from decouple import config, Csv

APP_NAME = "NyayBooker API"
APP_VERSION = "1.0.0"
API_PREFIX = "/api/v1"

DEBUG = config("DEBUG", default=False, cast=bool)
LOG_LEVEL = config("LOG_LEVEL", default="INFO")

DATABASE_URL = config("DATABASE_URL")

# JWT
JWT_SECRET = config("JWT_SECRET", default="change-me-in-production")
JWT_REFRESH_SECRET = config("JWT_REFRESH_SECRET", default="change-me-refresh-in-production")
JWT_ALGORITHM = "HS256"
JWT_ISSUER = "nyaybooker"
JWT_AUDIENCE = "nyaybooker-api"
JWT_EXPIRES_IN_DAYS = config("JWT_EXPIRES_IN_DAYS", default=7, cast=int)
JWT_REFRESH_EXPIRES_IN_DAYS = config("JWT_REFRESH_EXPIRES_IN_DAYS", default=30, cast=int)
BCRYPT_ROUNDS = config("BCRYPT_ROUNDS", default=12, cast=int)

GOOGLE_CLIENT_ID = config("GOOGLE_CLIENT_ID", default="")

# Razorpay
RAZORPAY_KEY_ID = config("RAZORPAY_KEY_ID", default="")
RAZORPAY_KEY_SECRET = config("RAZORPAY_KEY_SECRET", default="")
RAZORPAY_WEBHOOK_SECRET = config("RAZORPAY_WEBHOOK_SECRET", default="")
RAZORPAY_API_URL = config("RAZORPAY_API_URL", default="https://api.razorpay.com/v1")

# Supabase storage
SUPABASE_URL = config("SUPABASE_URL", default="")
SUPABASE_SERVICE_KEY = config("SUPABASE_SERVICE_KEY", default="")
SUPABASE_BUCKET = config("SUPABASE_BUCKET", default="documents")
SUPABASE_AVATAR_BUCKET = config("SUPABASE_AVATAR_BUCKET", default="avatars")

# Email (SMTP)
EMAIL_ENABLED = config("EMAIL_ENABLED", default=False, cast=bool)
SMTP_HOST = config("SMTP_HOST", default="smtp.gmail.com")
SMTP_PORT = config("SMTP_PORT", default=587, cast=int)
SMTP_USER = config("SMTP_USER", default="")
SMTP_PASSWORD = config("SMTP_PASSWORD", default="")
EMAIL_FROM = config("EMAIL_FROM", default="NyayBooker <noreply@nyaybooker.com>")

FRONTEND_URL = config("FRONTEND_URL", default="http://localhost:5173")
CORS_ORIGINS = config("CORS_ORIGINS", default="http://localhost:5173,http://localhost:3000", cast=Csv())

# Rate limiting
RATE_LIMIT_ENABLED = config("RATE_LIMIT_ENABLED", default=True, cast=bool)
RATE_LIMIT_WINDOW_SECONDS = config("RATE_LIMIT_WINDOW_SECONDS", default=900, cast=int)
RATE_LIMIT_MAX_REQUESTS = config("RATE_LIMIT_MAX_REQUESTS", default=100, cast=int)
# Only honour X-Forwarded-For when the app sits behind a proxy that sets it
TRUST_PROXY = config("TRUST_PROXY", default=False, cast=bool)
