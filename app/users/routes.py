import logging
import uuid
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.auth.dependencies import get_current_user, require_admin
from app.auth.schemas import UserResponse
from app.config import SUPABASE_AVATAR_BUCKET
from app.constants import ALLOWED_IMAGE_TYPES, MAX_AVATAR_SIZE
from app.database import get_db
from app.errors import BadRequestError, NotFoundError
from app.models import User, UserRole
from app.rate_limiter import upload_limiter
from app.services import storage
from app.users.schemas import ProfileUpdate, UserListItem
from app.utils.pagination import Pagination, pagination_params
from app.utils.response import paginated_response, success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/profile")
def get_profile(current_user: User = Depends(get_current_user)):
    return success_response(UserResponse.model_validate(current_user))


@router.put("/profile")
def update_profile(
    profile_data: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    for field, value in profile_data.dict(exclude_unset=True).items():
        if value is not None:
            setattr(current_user, field, value.strip())

    db.commit()
    db.refresh(current_user)
    return success_response(UserResponse.model_validate(current_user), "Profile updated successfully")


@router.post("/avatar")
async def upload_avatar(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    _: None = Depends(upload_limiter),
):
    if file.content_type not in ALLOWED_IMAGE_TYPES:
        raise BadRequestError("Avatar must be a JPEG, PNG or WebP image")

    content = await file.read()
    if len(content) > MAX_AVATAR_SIZE:
        raise BadRequestError("Avatar must be 5MB or smaller")

    extension = Path(file.filename or "").suffix.lower() or ".png"
    path = f"{current_user.id}/{uuid.uuid4()}{extension}"
    storage.upload_file(path, content, file.content_type, bucket=SUPABASE_AVATAR_BUCKET, upsert=True)

    current_user.avatar = storage.get_public_url(path, bucket=SUPABASE_AVATAR_BUCKET)
    db.commit()

    logger.info(f"Avatar updated for user {current_user.id}")
    return success_response({"avatar": current_user.avatar}, "Avatar uploaded successfully")


@router.get("/")
def list_users(
    role: Optional[UserRole] = None,
    search: Optional[str] = None,
    pagination: Pagination = Depends(pagination_params),
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db)
):
    query = db.query(User).filter(User.deleted_at.is_(None))
    if role:
        query = query.filter(User.role == role)
    if search:
        query = query.filter(or_(
            User.email.ilike(f"%{search}%"),
            User.first_name.ilike(f"%{search}%"),
            User.last_name.ilike(f"%{search}%"),
        ))

    total = query.count()
    users = query.order_by(User.created_at.desc()).offset(pagination.skip).limit(pagination.limit).all()
    return paginated_response(
        [UserListItem.model_validate(u) for u in users], total, pagination.page, pagination.limit
    )


@router.get("/{user_id}")
def get_user(user_id: str, current_user: User = Depends(require_admin()), db: Session = Depends(get_db)):
    user = db.query(User).filter(User.id == user_id, User.deleted_at.is_(None)).first()
    if not user:
        raise NotFoundError("User", user_id)
    return success_response(UserResponse.model_validate(user))
