import asyncio
import logging
from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import API_PREFIX, APP_NAME, APP_VERSION, CORS_ORIGINS, DEBUG
from app.database import Base, check_database_health, engine
from app.errors import AppError, DatabaseError, ValidationError
from app.logging_config import setup_logging
from app.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from app.chat.socket import bind_event_loop, sio

from app.auth.routes import router as auth_router
from app.users.routes import router as users_router
from app.lawyers.routes import router as lawyers_router
from app.bookings.routes import router as bookings_router
from app.payments.routes import router as payments_router
from app.case_payments.routes import router as case_payments_router
from app.cases.routes import router as cases_router
from app.chat.routes import router as chat_router
from app.reviews.routes import router as reviews_router
from app.notifications.routes import router as notifications_router
from app.documents.routes import router as documents_router
from app.audit.routes import router as audit_router
from app.admin.routes import router as admin_router
from app.analytics.routes import router as analytics_router

setup_logging()
logger = logging.getLogger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    bind_event_loop(asyncio.get_running_loop())
    logger.info(f"{APP_NAME} {APP_VERSION} started")
    yield
    logger.info(f"{APP_NAME} shutting down")


app = FastAPI(
    title=APP_NAME,
    description="Legal consultation booking marketplace",
    version=APP_VERSION,
    lifespan=lifespan,
)


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)


# --- Error handlers ---
def _error_response(request: Request, status_code: int, body: dict) -> JSONResponse:
    request.state.error_message = body.get("message")
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return _error_response(request, exc.status_code, exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    error = ValidationError.from_pydantic(exc.errors())
    return _error_response(request, error.status_code, error.to_dict())


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"Integrity error on {request.method} {request.url.path}: {exc.orig}")
    body = {"success": False, "message": "Resource already exists", "error": {"code": "ALREADY_EXISTS"}}
    return _error_response(request, 409, body)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
    error = DatabaseError()
    return _error_response(request, error.status_code, error.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        message = f"Route {request.method} {request.url.path} not found"
        code = "NOT_FOUND"
    else:
        message = str(exc.detail)
        code = "HTTP_ERROR"
    body = {"success": False, "message": message, "error": {"code": code}}
    return _error_response(request, exc.status_code, body)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    message = str(exc) if DEBUG else "Internal server error"
    body = {"success": False, "message": message, "error": {"code": "INTERNAL_ERROR"}}
    return _error_response(request, 500, body)


# Include routers
for router in (
    auth_router,
    users_router,
    lawyers_router,
    bookings_router,
    payments_router,
    case_payments_router,
    cases_router,
    chat_router,
    reviews_router,
    notifications_router,
    documents_router,
    audit_router,
    admin_router,
    analytics_router,
):
    app.include_router(router, prefix=API_PREFIX)


@app.get("/")
def root():
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "status": "running"
    }


@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.get("/health/ready")
def readiness_check():
    if not check_database_health():
        return JSONResponse(status_code=503, content={"status": "unavailable", "database": "disconnected"})
    return {"status": "ready", "database": "connected"}


# Socket.IO shares the process; serve with `uvicorn main:asgi_app`
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)
