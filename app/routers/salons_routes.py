# app/routers/salons_routes.py

import logging
from datetime import datetime, date, time, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, or_
from sqlmodel import Session, select

from app.db import get_session
from app.models import Salon, Staff, Service, Booking, Payment, Review
from app.schemas import (
    SalonCreate,
    SalonUpdate,
    SalonPublic,
    SalonPage,
    AvailabilityResponse,
    Role,
)
from app.auth import get_current_user
from app.deps import require_role, require_salon_owner, get_salon_or_404, is_salon_member
from app.availability import salon_available_slots, resolve_services, RELEASED_STATUSES
from app.routers.staff_routes import remove_staff_member
from app.config import SLOT_MINUTES
from app.core import format_hhmm, now_local

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/salons",
    tags=["salons"],
)


def average_rating(session: Session, salon_id: int) -> float:
    avg = session.exec(
        select(func.avg(Review.rating))
        .where(Review.salon_id == salon_id)
        .where(Review.is_visible == True)  # noqa: E712
    ).one()
    return round(float(avg), 2) if avg is not None else 0


def salon_out(session: Session, salon: Salon) -> dict:
    data = salon.model_dump()
    data["average_rating"] = average_rating(session, salon.id)
    return data


def validate_hours(open_time: time, close_time: time, working_days: List[int]):
    if open_time >= close_time:
        raise HTTPException(status_code=422, detail="open_time must be before close_time")
    for day in working_days:
        if not (0 <= day <= 6):
            raise HTTPException(status_code=422, detail="working_days must be integers between 0 and 6")
    if len(working_days) != len(set(working_days)):
        raise HTTPException(status_code=422, detail="working_days cannot contain duplicates")


def ensure_slug_free(session: Session, slug: str):
    existing = session.exec(select(Salon).where(Salon.slug == slug)).first()
    if existing is not None:
        raise HTTPException(status_code=409, detail="Salon slug already exists")


@router.post("", response_model=SalonPublic, status_code=201)
def create_salon(
    salon: SalonCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, Role.salon_owner)
    validate_hours(salon.open_time, salon.close_time, salon.working_days)
    ensure_slug_free(session, salon.slug)

    db_salon = Salon(**salon.model_dump(), owner_id=current_user["id"])
    session.add(db_salon)
    session.commit()
    session.refresh(db_salon)

    logger.info("Salon %s (%s) created by user %s", db_salon.id, db_salon.slug, current_user["id"])
    return salon_out(session, db_salon)


@router.get("", response_model=SalonPage)
def list_salons(
    city: Optional[str] = None,
    district: Optional[str] = None,
    search: Optional[str] = None,
    skip: int = Query(0, ge=0),
    take: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
):
    stmt = select(Salon).where(Salon.is_active == True)  # noqa: E712
    count_stmt = select(func.count()).select_from(Salon).where(Salon.is_active == True)  # noqa: E712

    filters = []
    if city:
        filters.append(Salon.city == city)
    if district:
        filters.append(Salon.district == district)
    if search:
        pattern = f"%{search}%"
        filters.append(or_(Salon.name.ilike(pattern), Salon.address.ilike(pattern)))
    for f in filters:
        stmt = stmt.where(f)
        count_stmt = count_stmt.where(f)

    total = session.exec(count_stmt).one()
    salons = session.exec(
        stmt.order_by(Salon.created_at.desc(), Salon.id.desc()).offset(skip).limit(take)
    ).all()

    return {
        "data": [salon_out(session, s) for s in salons],
        "meta": {"total": total, "skip": skip, "take": take, "has_more": skip + take < total},
    }


@router.get("/mine", response_model=List[SalonPublic])
def my_salons(
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, Role.salon_owner)
    salons = session.exec(
        select(Salon).where(Salon.owner_id == current_user["id"]).order_by(Salon.id)
    ).all()
    return [salon_out(session, s) for s in salons]


@router.get("/slug/{slug}", response_model=SalonPublic)
def get_salon_by_slug(slug: str, session: Session = Depends(get_session)):
    salon = session.exec(select(Salon).where(Salon.slug == slug)).first()
    if salon is None:
        raise HTTPException(status_code=404, detail=f"Salon with slug {slug} not found")
    return salon_out(session, salon)


@router.get("/{salon_id}", response_model=SalonPublic)
def get_salon(salon_id: int, session: Session = Depends(get_session)):
    return salon_out(session, get_salon_or_404(session, salon_id))


@router.patch("/{salon_id}", response_model=SalonPublic)
def update_salon(
    salon_id: int,
    changes: SalonUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    salon = require_salon_owner(session, current_user, salon_id)
    data = changes.model_dump(exclude_unset=True, exclude_none=True)

    if data.get("slug") and data["slug"] != salon.slug:
        ensure_slug_free(session, data["slug"])

    validate_hours(
        data.get("open_time", salon.open_time),
        data.get("close_time", salon.close_time),
        data.get("working_days", salon.working_days),
    )

    for key, value in data.items():
        setattr(salon, key, value)

    session.add(salon)
    session.commit()
    session.refresh(salon)
    return salon_out(session, salon)


@router.delete("/{salon_id}", status_code=204)
def delete_salon(
    salon_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    salon = require_salon_owner(session, current_user, salon_id)

    has_bookings = session.exec(
        select(Booking).where(Booking.salon_id == salon_id)
    ).first()
    if has_bookings is not None:
        # keep booking history; the salon just stops being listed
        salon.is_active = False
        session.add(salon)
    else:
        for member in session.exec(select(Staff).where(Staff.salon_id == salon_id)).all():
            remove_staff_member(session, member)
        for service in session.exec(select(Service).where(Service.salon_id == salon_id)).all():
            session.delete(service)
        session.flush()
        session.delete(salon)
    session.commit()
    logger.info("Salon %s removed by user %s", salon_id, current_user["id"])


@router.get("/{salon_id}/available-slots", response_model=AvailabilityResponse)
def salon_availability(
    salon_id: int,
    date: date,
    service_ids: List[int] = Query(default=[]),
    session: Session = Depends(get_session),
):
    salon = get_salon_or_404(session, salon_id)
    if not salon.is_active:
        raise HTTPException(status_code=404, detail="Salon not found or inactive")

    duration = SLOT_MINUTES
    if service_ids:
        duration = sum(s.duration for s in resolve_services(session, salon_id, service_ids))

    starts = salon_available_slots(session, salon, date, duration)
    return {
        "salon_id": salon_id,
        "date": date,
        "duration": duration,
        "available_starts": [format_hhmm(s) for s in starts],
    }


@router.get("/{salon_id}/stats")
def salon_stats(
    salon_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    get_salon_or_404(session, salon_id)
    if not is_salon_member(session, current_user, salon_id):
        raise HTTPException(status_code=403, detail="You do not have access to this salon")

    now = now_local()
    today = datetime.combine(now.date(), time.min)
    tomorrow = today + timedelta(days=1)
    start_of_month = today.replace(day=1)
    start_of_last_month = (start_of_month - timedelta(days=1)).replace(day=1)

    def count_bookings(*conditions) -> int:
        stmt = select(func.count()).select_from(Booking).where(Booking.salon_id == salon_id)
        for c in conditions:
            stmt = stmt.where(c)
        return session.exec(stmt).one()

    def paid_sum(*conditions) -> int:
        stmt = (
            select(func.coalesce(func.sum(Payment.amount), 0))
            .select_from(Payment)
            .join(Booking, Booking.id == Payment.booking_id)
            .where(Booking.salon_id == salon_id)
            .where(Payment.status == "PAID")
        )
        for c in conditions:
            stmt = stmt.where(c)
        return int(session.exec(stmt).one())

    today_bookings = count_bookings(
        Booking.starts_at >= today,
        Booking.starts_at < tomorrow,
        Booking.status.not_in(RELEASED_STATUSES),
    )
    month_bookings = count_bookings(Booking.starts_at >= start_of_month, Booking.status == "COMPLETED")
    last_month_bookings = count_bookings(
        Booking.starts_at >= start_of_last_month,
        Booking.starts_at < start_of_month,
        Booking.status == "COMPLETED",
    )
    if last_month_bookings > 0:
        growth = (month_bookings - last_month_bookings) / last_month_bookings * 100
    else:
        growth = 100.0 if month_bookings else 0.0

    total_reviews = session.exec(
        select(func.count()).select_from(Review)
        .where(Review.salon_id == salon_id)
        .where(Review.is_visible == True)  # noqa: E712
    ).one()

    return {
        "today_bookings": today_bookings,
        "month_bookings": month_bookings,
        "last_month_bookings": last_month_bookings,
        "booking_growth": round(growth, 2),
        "total_revenue": paid_sum(),
        "month_revenue": paid_sum(Payment.paid_at >= start_of_month),
        "average_rating": average_rating(session, salon_id),
        "total_reviews": total_reviews,
        "active_staff": session.exec(
            select(func.count()).select_from(Staff)
            .where(Staff.salon_id == salon_id)
            .where(Staff.is_active == True)  # noqa: E712
        ).one(),
    }
