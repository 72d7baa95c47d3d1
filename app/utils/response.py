from typing import Any, Optional

from fastapi.encoders import jsonable_encoder

from app.utils.pagination import build_pagination_meta


def success_response(data: Any = None, message: str = "Success", meta: Optional[dict] = None) -> dict:
    body = {"success": True, "message": message}
    if data is not None:
        body["data"] = jsonable_encoder(data)
    if meta is not None:
        body["meta"] = meta
    return body


def paginated_response(data: Any, total: int, page: int, limit: int, message: str = "Success") -> dict:
    return success_response(data=data, message=message, meta=build_pagination_meta(total, page, limit))
