"""
Supabase Storage wrapper for avatars and documents.

The client is created lazily so the app (and the tests) start without
Supabase credentials; any call made while unconfigured raises
ExternalServiceError.
"""

import logging
from typing import Optional

from supabase import Client, create_client

from app.config import SUPABASE_BUCKET, SUPABASE_SERVICE_KEY, SUPABASE_URL
from app.constants import SIGNED_URL_EXPIRY_SECONDS
from app.errors import ExternalServiceError

logger = logging.getLogger(__name__)

_client: Optional[Client] = None


def get_storage_client() -> Client:
    global _client
    if _client is None:
        if not SUPABASE_URL or not SUPABASE_SERVICE_KEY:
            raise ExternalServiceError("Storage", "Supabase is not configured")
        _client = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
    return _client


def upload_file(path: str, content: bytes, content_type: str, bucket: str = SUPABASE_BUCKET, upsert: bool = False) -> str:
    """Upload bytes to ``bucket/path`` and return the stored path."""
    try:
        get_storage_client().storage.from_(bucket).upload(
            path,
            content,
            {"content-type": content_type, "upsert": "true" if upsert else "false"},
        )
    except ExternalServiceError:
        raise
    except Exception as e:
        logger.error(f"Storage upload failed for {bucket}/{path}: {e}")
        raise ExternalServiceError("Storage", "File upload failed")
    return path


def delete_file(path: str, bucket: str = SUPABASE_BUCKET) -> None:
    try:
        get_storage_client().storage.from_(bucket).remove([path])
    except ExternalServiceError:
        raise
    except Exception as e:
        logger.error(f"Storage delete failed for {bucket}/{path}: {e}")
        raise ExternalServiceError("Storage", "File delete failed")


def get_public_url(path: str, bucket: str = SUPABASE_BUCKET) -> str:
    return get_storage_client().storage.from_(bucket).get_public_url(path)


def create_signed_url(path: str, expires_in: int = SIGNED_URL_EXPIRY_SECONDS, bucket: str = SUPABASE_BUCKET) -> str:
    try:
        result = get_storage_client().storage.from_(bucket).create_signed_url(path, expires_in)
    except ExternalServiceError:
        raise
    except Exception as e:
        logger.error(f"Signed URL creation failed for {bucket}/{path}: {e}")
        raise ExternalServiceError("Storage", "Could not create download link")
    # storage3 has returned both spellings across releases
    return result.get("signedURL") or result.get("signedUrl")


def check_storage_health() -> bool:
    try:
        get_storage_client().storage.list_buckets()
        return True
    except Exception as e:
        logger.error(f"Storage health check failed: {e}")
        return False
