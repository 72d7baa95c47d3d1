import logging
import time
import uuid
from typing import Optional

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.auth.utils import verify_token
from app.config import API_PREFIX
from app.database import SessionLocal
from app.errors import AuthenticationError
from app.models import ApiLog
from app.rate_limiter import client_ip

logger = logging.getLogger("app.requests")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["Cross-Origin-Opener-Policy"] = "same-origin-allow-popups"
        response.headers["Cross-Origin-Embedder-Policy"] = "unsafe-none"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response


def _user_id_from_request(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    try:
        return verify_token(auth_header[7:], "access")["sub"]
    except AuthenticationError:
        return None


def _store_api_log(**fields):
    db = SessionLocal()
    try:
        db.add(ApiLog(**fields))
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to store API log for {fields.get('path')}: {e}")
    finally:
        db.close()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an X-Request-ID, log it, and record API calls in api_logs."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()

        response: Response = await call_next(request)

        duration_ms = int((time.perf_counter() - start) * 1000)
        response.headers["X-Request-ID"] = request_id

        path = request.url.path
        level = logging.ERROR if response.status_code >= 500 else logging.WARNING if response.status_code >= 400 else logging.INFO
        logger.log(level, f"{request.method} {path} {response.status_code} {duration_ms}ms [{request_id}]")

        if path.startswith(f"{API_PREFIX}/"):
            await run_in_threadpool(
                _store_api_log,
                request_id=request_id,
                user_id=_user_id_from_request(request),
                method=request.method,
                path=path,
                status_code=response.status_code,
                duration_ms=duration_ms,
                ip=client_ip(request),
                user_agent=(request.headers.get("User-Agent") or "")[:500],
                error=getattr(request.state, "error_message", None),
            )

        return response
