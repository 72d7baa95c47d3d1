from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app.database import get_db
from app.models import User, UserRole, Lawyer, VerificationStatus
from app.auth.utils import verify_token
from app.errors import AuthenticationError, ForbiddenError

bearer_scheme = HTTPBearer(auto_error=False)


def _load_user(token: str, db: Session) -> User:
    payload = verify_token(token, "access")
    user = db.query(User).filter(User.id == payload["sub"], User.deleted_at.is_(None)).first()
    if user is None:
        raise AuthenticationError.token_invalid()
    if not user.is_active:
        raise AuthenticationError.account_disabled()
    return user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db)
):
    if credentials is None or not credentials.credentials:
        raise AuthenticationError.token_missing()
    return _load_user(credentials.credentials, db)


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db)
):
    """Like get_current_user, but anonymous or bad tokens just yield None."""
    if credentials is None or not credentials.credentials:
        return None
    try:
        return _load_user(credentials.credentials, db)
    except AuthenticationError:
        return None


def require_role(allowed_roles: list[UserRole]):
    def role_checker(current_user: User = Depends(get_current_user)):
        if current_user.role not in allowed_roles:
            raise ForbiddenError("Insufficient permissions")
        return current_user
    return role_checker


def require_verified_lawyer():
    def lawyer_checker(current_user: User = Depends(get_current_user)):
        if current_user.role != UserRole.LAWYER or current_user.lawyer is None:
            raise ForbiddenError("Lawyer access required")
        if current_user.lawyer.verification_status != VerificationStatus.VERIFIED:
            raise ForbiddenError("Your lawyer profile is pending verification")
        return current_user
    return lawyer_checker


def get_lawyer_profile(db: Session, user: User) -> Lawyer:
    lawyer = db.query(Lawyer).filter(Lawyer.user_id == user.id).first()
    if user.role != UserRole.LAWYER or lawyer is None:
        raise ForbiddenError("Lawyer profile required")
    return lawyer


# Convenience wrappers
def require_admin():
    return require_role([UserRole.ADMIN])


def require_lawyer():
    return require_role([UserRole.LAWYER])


def require_lawyer_or_admin():
    return require_role([UserRole.LAWYER, UserRole.ADMIN])
