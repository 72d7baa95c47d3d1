import logging
from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session
from datetime import timedelta, datetime
from app.database import get_db
from app.models import (
    User, UserRole, Lawyer, VerificationStatus, RefreshToken, EmailVerificationToken, PasswordResetToken
)
from app.auth.schemas import (
    UserCreate, LawyerCreate, UserLogin, GoogleLoginRequest, TokenRequest, EmailRequest, RefreshRequest,
    ResetPasswordRequest, ChangePasswordRequest, UserResponse
)
from app.auth.utils import (
    verify_password, get_password_hash, create_access_token, create_refresh_token, verify_token,
    ACCESS_TOKEN_EXPIRE, REFRESH_TOKEN_EXPIRE
)
from app.auth.dependencies import get_current_user
from app.config import GOOGLE_CLIENT_ID
from app.constants import EMAIL_VERIFICATION_EXPIRY_HOURS, PASSWORD_RESET_EXPIRY_HOURS
from app.errors import AuthenticationError, BadRequestError, ConflictError
from app.logging_config import log_business
from app.rate_limiter import auth_limiter, password_reset_limiter, verification_limiter
from app.services import email_service
from app.utils.identifiers import generate_lawyer_slug, generate_token
from app.utils.response import success_response
from google.oauth2 import id_token
from google.auth.transport import requests as google_requests

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def issue_tokens(db: Session, user: User) -> dict:
    """Create an access/refresh pair and persist the refresh token. Commits."""
    access_token = create_access_token(user)
    refresh_token = create_refresh_token(user)
    db.add(RefreshToken(
        token=refresh_token,
        user_id=user.id,
        expires_at=datetime.utcnow() + REFRESH_TOKEN_EXPIRE,
    ))
    db.commit()
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "expires_at": datetime.utcnow() + ACCESS_TOKEN_EXPIRE,
    }


def _new_verification_token(db: Session, user: User) -> str:
    token = generate_token()
    db.add(EmailVerificationToken(
        token=token,
        user_id=user.id,
        expires_at=datetime.utcnow() + timedelta(hours=EMAIL_VERIFICATION_EXPIRY_HOURS),
    ))
    return token


def _revoke_refresh_tokens(db: Session, user_id: str):
    db.query(RefreshToken).filter(
        RefreshToken.user_id == user_id,
        RefreshToken.revoked_at.is_(None)
    ).update({"revoked_at": datetime.utcnow()}, synchronize_session=False)


def _ensure_email_free(db: Session, email: str):
    if db.query(User).filter(User.email == email).first():
        raise ConflictError("An account with this email already exists")


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register_user(
    user_data: UserCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    _: None = Depends(auth_limiter),
):
    _ensure_email_free(db, user_data.email)

    db_user = User(
        email=user_data.email,
        password=get_password_hash(user_data.password),
        first_name=user_data.first_name.strip(),
        last_name=user_data.last_name.strip(),
        phone=user_data.phone,
        role=UserRole.USER,
    )
    db.add(db_user)
    db.flush()
    verification_token = _new_verification_token(db, db_user)
    db.commit()
    db.refresh(db_user)

    tokens = issue_tokens(db, db_user)
    background_tasks.add_task(
        email_service.send_in_background, email_service.send_verification_email,
        db_user.email, db_user.first_name, verification_token
    )
    log_business("USER_REGISTERED", user_id=db_user.id, email=db_user.email)

    return success_response(
        {"user": UserResponse.model_validate(db_user), "tokens": tokens},
        "Registration successful. Please verify your email.",
    )


@router.post("/register/lawyer", status_code=status.HTTP_201_CREATED)
def register_lawyer(
    lawyer_data: LawyerCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    _: None = Depends(auth_limiter),
):
    _ensure_email_free(db, lawyer_data.email)
    if db.query(Lawyer).filter(Lawyer.bar_council_id == lawyer_data.bar_council_id).first():
        raise ConflictError("A lawyer with this Bar Council ID already exists")

    db_user = User(
        email=lawyer_data.email,
        password=get_password_hash(lawyer_data.password),
        first_name=lawyer_data.first_name.strip(),
        last_name=lawyer_data.last_name.strip(),
        phone=lawyer_data.phone,
        role=UserRole.LAWYER,
    )
    db.add(db_user)
    db.flush()

    db_lawyer = Lawyer(
        user_id=db_user.id,
        bar_council_id=lawyer_data.bar_council_id,
        bar_council_state=lawyer_data.bar_council_state,
        enrollment_year=lawyer_data.enrollment_year,
        experience=max(0, datetime.utcnow().year - lawyer_data.enrollment_year),
        city=lawyer_data.city,
        state=lawyer_data.state,
        slug=generate_lawyer_slug(db_user.first_name, db_user.last_name),
        verification_status=VerificationStatus.PENDING,
        languages=["English"],
    )
    db.add(db_lawyer)
    verification_token = _new_verification_token(db, db_user)
    db.commit()
    db.refresh(db_user)

    tokens = issue_tokens(db, db_user)
    background_tasks.add_task(
        email_service.send_in_background, email_service.send_verification_email,
        db_user.email, db_user.first_name, verification_token
    )
    log_business("LAWYER_REGISTERED", user_id=db_user.id, lawyer_id=db_lawyer.id)

    return success_response(
        {"user": UserResponse.model_validate(db_user), "tokens": tokens},
        "Lawyer registration successful. Your profile is pending verification.",
    )


@router.post("/login")
def login_user(login_data: UserLogin, db: Session = Depends(get_db), _: None = Depends(auth_limiter)):
    user = db.query(User).filter(User.email == login_data.email, User.deleted_at.is_(None)).first()

    if not user:
        raise AuthenticationError.invalid_credentials()
    if not user.is_active:
        raise AuthenticationError.account_disabled()
    if not verify_password(login_data.password, user.password):
        raise AuthenticationError.invalid_credentials()

    # Update last login
    user.last_login_at = datetime.utcnow()
    db.commit()
    db.refresh(user)

    tokens = issue_tokens(db, user)
    log_business("USER_LOGIN", user_id=user.id)

    return success_response({"user": UserResponse.model_validate(user), "tokens": tokens}, "Login successful")


@router.post("/google")
def google_login(request: GoogleLoginRequest, db: Session = Depends(get_db), _: None = Depends(auth_limiter)):
    try:
        # Verify Google ID token
        id_info = id_token.verify_oauth2_token(
            request.id_token,
            google_requests.Request(),
            GOOGLE_CLIENT_ID
        )
    except ValueError:
        raise BadRequestError("Invalid Google token")

    email = (id_info.get("email") or "").lower()
    google_id = id_info.get("sub")
    email_verified = bool(id_info.get("email_verified"))

    if not email:
        raise BadRequestError("Google account does not have an email")

    # Find existing user by email OR google_id
    user = (
        db.query(User)
        .filter((User.email == email) | (User.google_id == google_id))
        .first()
    )

    if not user:
        user = User(
            email=email,
            first_name=id_info.get("given_name") or email.split("@")[0],
            last_name=id_info.get("family_name") or "",
            avatar=id_info.get("picture"),
            google_id=google_id,
            role=UserRole.USER,
            password=None,  # Google-only account
            is_email_verified=email_verified,
            email_verified_at=datetime.utcnow() if email_verified else None,
        )
        db.add(user)
        log_business("USER_REGISTERED_GOOGLE", email=email)
    else:
        if not user.is_active:
            raise AuthenticationError.account_disabled()
        if not user.google_id:
            user.google_id = google_id
        if not user.avatar and id_info.get("picture"):
            user.avatar = id_info.get("picture")
        if email_verified and not user.is_email_verified:
            user.is_email_verified = True
            user.email_verified_at = datetime.utcnow()

    user.last_login_at = datetime.utcnow()
    db.commit()
    db.refresh(user)

    tokens = issue_tokens(db, user)
    return success_response({"user": UserResponse.model_validate(user), "tokens": tokens}, "Login successful")


@router.post("/verify-email")
def verify_email(request: TokenRequest, db: Session = Depends(get_db)):
    record = db.query(EmailVerificationToken).filter(
        EmailVerificationToken.token == request.token,
        EmailVerificationToken.used_at.is_(None),
        EmailVerificationToken.expires_at > datetime.utcnow()
    ).first()
    if not record:
        raise BadRequestError("Invalid or expired verification token")

    user = db.query(User).filter(User.id == record.user_id).first()
    user.is_email_verified = True
    user.email_verified_at = datetime.utcnow()
    record.used_at = datetime.utcnow()
    db.commit()

    log_business("EMAIL_VERIFIED", user_id=user.id)
    return success_response(message="Email verified successfully")


@router.post("/resend-verification")
def resend_verification(
    request: EmailRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    _: None = Depends(verification_limiter),
):
    message = "If the account exists, a verification email has been sent"
    user = db.query(User).filter(User.email == request.email.lower()).first()
    if not user:
        return success_response(message=message)
    if user.is_email_verified:
        raise BadRequestError("Email is already verified")

    db.query(EmailVerificationToken).filter(EmailVerificationToken.user_id == user.id).delete()
    token = _new_verification_token(db, user)
    db.commit()

    background_tasks.add_task(
        email_service.send_in_background, email_service.send_verification_email,
        user.email, user.first_name, token
    )
    return success_response(message=message)


@router.post("/forgot-password")
def forgot_password(
    request: EmailRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    _: None = Depends(password_reset_limiter),
):
    # Same answer whether or not the account exists
    message = "If an account exists with this email, a password reset link has been sent"
    user = db.query(User).filter(User.email == request.email.lower(), User.deleted_at.is_(None)).first()
    if not user:
        return success_response(message=message)

    db.query(PasswordResetToken).filter(PasswordResetToken.user_id == user.id).delete()
    token = generate_token()
    db.add(PasswordResetToken(
        token=token,
        user_id=user.id,
        expires_at=datetime.utcnow() + timedelta(hours=PASSWORD_RESET_EXPIRY_HOURS),
    ))
    db.commit()

    background_tasks.add_task(
        email_service.send_in_background, email_service.send_password_reset_email,
        user.email, user.first_name, token
    )
    log_business("PASSWORD_RESET_REQUESTED", user_id=user.id)
    return success_response(message=message)


@router.post("/reset-password")
def reset_password(request: ResetPasswordRequest, db: Session = Depends(get_db), _: None = Depends(password_reset_limiter)):
    record = db.query(PasswordResetToken).filter(
        PasswordResetToken.token == request.token,
        PasswordResetToken.used_at.is_(None),
        PasswordResetToken.expires_at > datetime.utcnow()
    ).first()
    if not record:
        raise BadRequestError("Invalid or expired reset token")

    user = db.query(User).filter(User.id == record.user_id).first()
    user.password = get_password_hash(request.password)
    record.used_at = datetime.utcnow()
    _revoke_refresh_tokens(db, user.id)
    db.commit()

    log_business("PASSWORD_RESET", user_id=user.id)
    return success_response(message="Password reset successful. Please log in with your new password.")


@router.post("/refresh")
def refresh_tokens(request: RefreshRequest, db: Session = Depends(get_db)):
    payload = verify_token(request.refresh_token, "refresh")

    stored = db.query(RefreshToken).filter(
        RefreshToken.token == request.refresh_token,
        RefreshToken.user_id == payload["sub"],
        RefreshToken.revoked_at.is_(None),
        RefreshToken.expires_at > datetime.utcnow()
    ).first()
    if not stored:
        raise AuthenticationError.token_invalid()

    user = stored.user
    if not user.is_active or user.deleted_at is not None:
        raise AuthenticationError.account_disabled()

    # Rotate: the presented refresh token cannot be used again
    stored.revoked_at = datetime.utcnow()
    db.commit()

    return success_response({"tokens": issue_tokens(db, user)}, "Token refreshed")


@router.post("/logout")
def logout(
    request: RefreshRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    db.query(RefreshToken).filter(
        RefreshToken.token == request.refresh_token,
        RefreshToken.user_id == current_user.id,
        RefreshToken.revoked_at.is_(None)
    ).update({"revoked_at": datetime.utcnow()}, synchronize_session=False)
    db.commit()
    return success_response(message="Logged out successfully")


@router.post("/logout-all")
def logout_all(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    _revoke_refresh_tokens(db, current_user.id)
    db.commit()
    return success_response(message="Logged out from all devices")


@router.get("/me")
def get_current_user_info(current_user: User = Depends(get_current_user)):
    return success_response(UserResponse.model_validate(current_user))


@router.put("/change-password")
def change_password(
    request: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    if not verify_password(request.current_password, current_user.password):
        raise BadRequestError("Current password is incorrect")

    current_user.password = get_password_hash(request.new_password)
    _revoke_refresh_tokens(db, current_user.id)
    db.commit()

    log_business("PASSWORD_CHANGED", user_id=current_user.id)
    return success_response(message="Password changed successfully. Please log in again.")
