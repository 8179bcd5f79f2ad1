# app/routers/reviews_routes.py

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.db import get_session
from app.models import Review, Booking, Salon, Staff
from app.schemas import ReviewCreate, ReviewReply, ReviewPublic, ReviewPage
from app.auth import get_current_user
from app.deps import get_salon_or_404, require_salon_owner
from app.core import now_local
from app.notifications import notify_new_review

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/reviews",
    tags=["reviews"],
)


def get_review_or_404(session: Session, review_id: int) -> Review:
    review = session.get(Review, review_id)
    if review is None:
        raise HTTPException(status_code=404, detail=f"Review with ID {review_id} not found")
    return review


def refresh_staff_rating(session: Session, staff_id: Optional[int]):
    if staff_id is None:
        return
    staff = session.get(Staff, staff_id)
    if staff is None:
        return
    avg = session.exec(
        select(func.avg(Review.rating))
        .where(Review.staff_id == staff_id)
        .where(Review.is_visible == True)  # noqa: E712
    ).one()
    staff.rating = round(float(avg), 2) if avg is not None else 0
    session.add(staff)


@router.post("", response_model=ReviewPublic, status_code=201)
def create_review(
    review: ReviewCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    booking = session.get(Booking, review.booking_id)
    if booking is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    if booking.customer_id != current_user["id"]:
        raise HTTPException(status_code=403, detail="You can only review your own bookings")
    if booking.status != "COMPLETED":
        raise HTTPException(status_code=422, detail="You can only review completed bookings")

    existing = session.exec(select(Review).where(Review.booking_id == booking.id)).first()
    if existing is not None:
        raise HTTPException(status_code=409, detail="You have already reviewed this booking")

    db_review = Review(
        booking_id=booking.id,
        customer_id=current_user["id"],
        salon_id=booking.salon_id,
        staff_id=booking.staff_id,
        rating=review.rating,
        comment=review.comment,
    )
    session.add(db_review)
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=409, detail="You have already reviewed this booking")

    refresh_staff_rating(session, booking.staff_id)
    salon = session.get(Salon, booking.salon_id)
    notify_new_review(session, salon.owner_id, current_user["name"], review.rating, salon.name)
    session.commit()
    session.refresh(db_review)

    logger.info("Review %s (%s stars) for salon %s", db_review.id, db_review.rating, salon.id)
    return db_review


@router.get("/salon/{salon_id}", response_model=ReviewPage)
def list_salon_reviews(
    salon_id: int,
    min_rating: Optional[int] = Query(default=None, ge=1, le=5),
    skip: int = Query(0, ge=0),
    take: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
):
    get_salon_or_404(session, salon_id)

    visible = [Review.salon_id == salon_id, Review.is_visible == True]  # noqa: E712
    stmt = select(Review)
    count_stmt = select(func.count()).select_from(Review)
    for c in visible:
        stmt = stmt.where(c)
        count_stmt = count_stmt.where(c)
    if min_rating is not None:
        stmt = stmt.where(Review.rating >= min_rating)
        count_stmt = count_stmt.where(Review.rating >= min_rating)

    total = session.exec(count_stmt).one()
    reviews = session.exec(
        stmt.order_by(Review.created_at.desc(), Review.id.desc()).offset(skip).limit(take)
    ).all()

    # average and distribution always cover every visible review
    rows = session.exec(
        select(Review.rating, func.count())
        .where(*visible)
        .group_by(Review.rating)
    ).all()
    distribution = {str(star): 0 for star in range(1, 6)}
    for rating, count in rows:
        distribution[str(rating)] = count
    rated = sum(distribution.values())
    average = sum(int(star) * n for star, n in distribution.items()) / rated if rated else 0

    return {
        "data": reviews,
        "meta": {
            "total": total,
            "skip": skip,
            "take": take,
            "has_more": skip + take < total,
            "average_rating": round(average, 2),
            "distribution": distribution,
        },
    }


@router.get("/{review_id}", response_model=ReviewPublic)
def get_review(review_id: int, session: Session = Depends(get_session)):
    return get_review_or_404(session, review_id)


@router.patch("/{review_id}/reply", response_model=ReviewPublic)
def reply_to_review(
    review_id: int,
    body: ReviewReply,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    review = get_review_or_404(session, review_id)
    require_salon_owner(session, current_user, review.salon_id)

    review.reply = body.reply
    review.replied_at = now_local()
    session.add(review)
    session.commit()
    session.refresh(review)
    return review


@router.patch("/{review_id}/toggle-visibility", response_model=ReviewPublic)
def toggle_review_visibility(
    review_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    review = get_review_or_404(session, review_id)
    require_salon_owner(session, current_user, review.salon_id)

    review.is_visible = not review.is_visible
    session.add(review)
    session.flush()
    refresh_staff_rating(session, review.staff_id)
    session.commit()
    session.refresh(review)
    return review
