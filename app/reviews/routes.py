import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from app.auth.dependencies import get_current_user, require_verified_lawyer
from app.constants import MIN_REVIEW_RESPONSE_LENGTH, REVIEW_EDIT_WINDOW_HOURS
from app.database import get_db
from app.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from app.logging_config import log_business
from app.models import Booking, BookingStatus, Lawyer, NotificationType, Review, User, UserRole
from app.reviews.schemas import ReviewCreate, ReviewResponseCreate, ReviewUpdate
from app.services.notification_service import notify_in_background
from app.utils.pagination import Pagination, pagination_params
from app.utils.response import paginated_response, success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reviews", tags=["Reviews"])


def author_display_name(user: User) -> str:
    """Public reviews show "First L." only."""
    if user.last_name:
        return f"{user.first_name} {user.last_name[0]}."
    return user.first_name


def recompute_lawyer_rating(db: Session, lawyer_id: str):
    average, count = db.query(func.avg(Review.rating), func.count(Review.id)).filter(
        Review.lawyer_id == lawyer_id, Review.is_published == True
    ).one()
    db.query(Lawyer).filter(Lawyer.id == lawyer_id).update({
        Lawyer.average_rating: float(average or 0),
        Lawyer.total_reviews: count or 0,
    }, synchronize_session=False)


def serialize_review(review: Review, public: bool = False) -> dict:
    data = {
        "id": review.id,
        "booking_id": review.booking_id,
        "lawyer_id": review.lawyer_id,
        "rating": review.rating,
        "title": review.title,
        "content": review.content,
        "is_verified": review.is_verified,
        "helpful_count": review.helpful_count,
        "lawyer_response": review.lawyer_response,
        "responded_at": review.responded_at,
        "created_at": review.created_at,
        "updated_at": review.updated_at,
    }
    if public:
        data["author"] = {"name": author_display_name(review.user), "avatar": review.user.avatar}
    else:
        data["is_published"] = review.is_published
    return data


def _get_review(db: Session, review_id: str) -> Review:
    review = db.query(Review).options(joinedload(Review.user)).filter(Review.id == review_id).first()
    if not review:
        raise NotFoundError("Review", review_id)
    return review


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_review(
    review_data: ReviewCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    booking = db.query(Booking).options(joinedload(Booking.lawyer)).filter(Booking.id == review_data.booking_id).first()
    if not booking:
        raise NotFoundError("Booking", review_data.booking_id)
    if booking.client_id != current_user.id:
        raise ForbiddenError("You can only review your own bookings")
    if booking.status != BookingStatus.COMPLETED:
        raise BadRequestError("You can only review completed consultations")
    if db.query(Review.id).filter(Review.booking_id == booking.id).first():
        raise ConflictError("You have already reviewed this booking")

    review = Review(
        booking_id=booking.id,
        user_id=current_user.id,
        lawyer_id=booking.lawyer_id,
        rating=review_data.rating,
        title=review_data.title,
        content=review_data.content,
        is_verified=True,
    )
    db.add(review)
    db.flush()
    recompute_lawyer_rating(db, booking.lawyer_id)
    db.commit()
    db.refresh(review)

    background_tasks.add_task(
        notify_in_background,
        user_id=booking.lawyer.user_id,
        type=NotificationType.REVIEW_RECEIVED,
        title="New Review",
        message=f"{current_user.first_name} left you a {review.rating}-star review.",
        action_url="/lawyer/reviews",
        metadata={"review_id": review.id, "rating": review.rating},
    )

    log_business("REVIEW_CREATED", review_id=review.id, lawyer_id=booking.lawyer_id, rating=review.rating)
    return success_response(serialize_review(review), "Review submitted successfully")


@router.get("/lawyer/{lawyer_id}")
def lawyer_reviews(
    lawyer_id: str,
    pagination: Pagination = Depends(pagination_params),
    db: Session = Depends(get_db)
):
    visible = (Review.lawyer_id == lawyer_id, Review.is_published == True, Review.is_hidden == False)
    query = db.query(Review).options(joinedload(Review.user)).filter(*visible)
    total = query.count()
    reviews = query.order_by(Review.created_at.desc()).offset(pagination.skip).limit(pagination.limit).all()

    distribution = {str(star): 0 for star in range(1, 6)}
    for rating, count in db.query(Review.rating, func.count(Review.id)).filter(*visible).group_by(Review.rating).all():
        distribution[str(rating)] = count
    average = db.query(func.avg(Review.rating)).filter(*visible).scalar()

    body = paginated_response([serialize_review(r, public=True) for r in reviews], total, pagination.page, pagination.limit)
    body["meta"]["rating_distribution"] = distribution
    body["meta"]["average_rating"] = round(float(average or 0), 1)
    return body


@router.get("/my")
def my_reviews(
    pagination: Pagination = Depends(pagination_params),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    query = db.query(Review).options(
        joinedload(Review.lawyer).joinedload(Lawyer.user)
    ).filter(Review.user_id == current_user.id)
    total = query.count()
    reviews = query.order_by(Review.created_at.desc()).offset(pagination.skip).limit(pagination.limit).all()

    data = []
    for review in reviews:
        item = serialize_review(review)
        item["lawyer"] = {
            "id": review.lawyer.id,
            "name": review.lawyer.user.full_name,
            "slug": review.lawyer.slug,
            "avatar": review.lawyer.user.avatar,
        }
        data.append(item)
    return paginated_response(data, total, pagination.page, pagination.limit)


@router.put("/{review_id}")
def update_review(
    review_id: str,
    review_data: ReviewUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    review = _get_review(db, review_id)
    if review.user_id != current_user.id:
        raise ForbiddenError("You can only edit your own reviews")
    if datetime.utcnow() - review.created_at > timedelta(hours=REVIEW_EDIT_WINDOW_HOURS):
        raise BadRequestError(f"Reviews can only be edited within {REVIEW_EDIT_WINDOW_HOURS} hours of submission")

    for field, value in review_data.dict(exclude_unset=True).items():
        if value is not None:
            setattr(review, field, value)
    db.flush()
    recompute_lawyer_rating(db, review.lawyer_id)
    db.commit()
    db.refresh(review)
    return success_response(serialize_review(review), "Review updated successfully")


@router.post("/{review_id}/respond")
def respond_to_review(
    review_id: str,
    response_data: ReviewResponseCreate,
    current_user: User = Depends(require_verified_lawyer()),
    db: Session = Depends(get_db)
):
    text = response_data.response.strip()
    if len(text) < MIN_REVIEW_RESPONSE_LENGTH:
        raise BadRequestError(f"Response must be at least {MIN_REVIEW_RESPONSE_LENGTH} characters")

    review = _get_review(db, review_id)
    if review.lawyer_id != current_user.lawyer.id:
        raise ForbiddenError("You can only respond to reviews on your profile")
    if review.lawyer_response:
        raise ConflictError("You have already responded to this review")

    review.lawyer_response = text
    review.responded_at = datetime.utcnow()
    db.commit()
    db.refresh(review)
    return success_response(serialize_review(review), "Response added successfully")


@router.post("/{review_id}/helpful")
def mark_helpful(review_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    updated = db.query(Review).filter(Review.id == review_id).update(
        {Review.helpful_count: Review.helpful_count + 1}, synchronize_session=False
    )
    if not updated:
        raise NotFoundError("Review", review_id)
    db.commit()
    return success_response(message="Marked as helpful")


@router.delete("/{review_id}")
def delete_review(review_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    review = _get_review(db, review_id)
    if review.user_id != current_user.id and current_user.role != UserRole.ADMIN:
        raise ForbiddenError("Not authorized to delete this review")

    lawyer_id = review.lawyer_id
    db.delete(review)
    db.flush()
    recompute_lawyer_rating(db, lawyer_id)
    db.commit()

    log_business("REVIEW_DELETED", review_id=review_id, by=current_user.id)
    return success_response(message="Review deleted successfully")
