# app/routers/bookings_routes.py

import logging
from datetime import datetime, timedelta, date, time
from typing import Optional, List
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.db import get_session
from app.models import Booking, BookingService, Service, Staff, Salon, Payment
from app.schemas import (
    BookingCreate,
    BookingPublic,
    BookingPage,
    BookingStatus,
    BookingStatusUpdate,
    BookingCancel,
    StaffAssign,
    Role,
)
from app.auth import get_current_user
from app.deps import require_role, is_salon_member, require_salon_member, get_salon_or_404
from app.availability import salon_window, check_staff_free, resolve_services
from app.config import SLOT_MINUTES, BOOKING_MAX_ADVANCE_DAYS, BOOKING_CODE_PREFIX
from app.core import parse_hhmm, format_hhmm, is_on_grid, end_time_for, now_local
from app.notifications import (
    notify_booking_created,
    notify_booking_confirmed,
    notify_booking_cancelled,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/bookings",
    tags=["bookings"],
)

VALID_TRANSITIONS = {
    "PENDING": {"CONFIRMED", "CANCELLED"},
    "CONFIRMED": {"IN_PROGRESS", "CANCELLED", "NO_SHOW"},
    "IN_PROGRESS": {"COMPLETED", "CANCELLED"},
    "COMPLETED": set(),
    "CANCELLED": set(),
    "NO_SHOW": set(),
}

BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
BOOKING_CODE_LENGTH = 10


def generate_booking_code() -> str:
    """"RB" followed by ten uppercase base-36 characters."""
    n = uuid4().int
    chars = []
    while len(chars) < BOOKING_CODE_LENGTH:
        n, rem = divmod(n, 36)
        chars.append(BASE36[rem])
    return BOOKING_CODE_PREFIX + "".join(chars)


def booking_out(session: Session, booking: Booking) -> dict:
    data = booking.model_dump()
    rows = session.exec(
        select(BookingService, Service)
        .join(Service, Service.id == BookingService.service_id)
        .where(BookingService.booking_id == booking.id)
        .order_by(BookingService.id)
    ).all()
    data["services"] = [
        {"service_id": bs.service_id, "name": s.name, "price": bs.price, "duration": bs.duration}
        for bs, s in rows
    ]
    return data


def get_booking_or_404(session: Session, booking_id: int) -> Booking:
    booking = session.get(Booking, booking_id)
    if booking is None:
        raise HTTPException(status_code=404, detail=f"Booking with ID {booking_id} not found")
    return booking


def validate_booking_access(session: Session, booking: Booking, user: dict, salon_only: bool = False):
    if is_salon_member(session, user, booking.salon_id):
        return
    if not salon_only and booking.customer_id == user["id"]:
        return
    raise HTTPException(status_code=403, detail="You do not have access to this booking")


def apply_status_change(
    session: Session,
    booking: Booking,
    new_status: str,
    user: dict,
    cancel_reason: Optional[str] = None,
):
    """Move a booking along its lifecycle; the caller commits."""
    if new_status not in VALID_TRANSITIONS[booking.status]:
        raise HTTPException(
            status_code=422,
            detail=f"Cannot change status from {booking.status} to {new_status}",
        )

    old_status = booking.status
    booking.status = new_status

    if new_status == "CANCELLED":
        booking.cancel_reason = cancel_reason
        booking.cancelled_at = now_local()
        booking.cancelled_by = user["id"]
        notify_booking_cancelled(session, booking.customer_id, booking.booking_code, cancel_reason)

    elif new_status == "CONFIRMED":
        salon = session.get(Salon, booking.salon_id)
        notify_booking_confirmed(session, booking.customer_id, booking.booking_code, salon.name)

    elif new_status == "COMPLETED":
        # paid at the counter if nothing was settled before
        booking.payment_status = "PAID"
        payment = session.exec(select(Payment).where(Payment.booking_id == booking.id)).first()
        if payment is not None and payment.status != "PAID":
            payment.status = "PAID"
            payment.paid_at = now_local()
            session.add(payment)

    session.add(booking)
    logger.info(
        "Booking %s: %s -> %s by user %s",
        booking.booking_code, old_status, new_status, user["id"],
    )


def paginate(session: Session, stmt, count_stmt, skip: int, take: int) -> dict:
    total = session.exec(count_stmt).one()
    bookings = session.exec(
        stmt.order_by(Booking.starts_at.desc()).offset(skip).limit(take)
    ).all()
    return {
        "data": [booking_out(session, b) for b in bookings],
        "meta": {"total": total, "skip": skip, "take": take, "has_more": skip + take < total},
    }


@router.post("", response_model=BookingPublic, status_code=201)
def create_booking(
    booking: BookingCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    # 1) Validate salon
    salon = session.get(Salon, booking.salon_id)
    if salon is None or not salon.is_active:
        raise HTTPException(status_code=404, detail="Salon not found or inactive")

    # 2) Validate services
    services = resolve_services(session, salon.id, booking.service_ids)
    total_duration = sum(s.duration for s in services)
    total_amount = sum(s.price for s in services)

    # 3) Validate slot alignment
    slot_time = parse_hhmm(booking.time_slot)
    if not is_on_grid(slot_time, SLOT_MINUTES):
        raise HTTPException(status_code=422, detail=f"Start time must be in {SLOT_MINUTES}-minute increments")

    # 4) Build booking interval
    starts_at = datetime.combine(booking.date, slot_time)
    ends_at = end_time_for(starts_at, total_duration)

    now = now_local()
    if starts_at < now:
        raise HTTPException(status_code=422, detail="Cannot book an appointment in the past")
    if booking.date > now.date() + timedelta(days=BOOKING_MAX_ADVANCE_DAYS):
        raise HTTPException(
            status_code=422,
            detail=f"Bookings open at most {BOOKING_MAX_ADVANCE_DAYS} days in advance",
        )

    # 5) Salon opening hours
    window = salon_window(salon, booking.date)
    if window is None:
        raise HTTPException(status_code=422, detail="Salon is closed that day")
    if starts_at < datetime.combine(booking.date, window[0]) or ends_at > datetime.combine(booking.date, window[1]):
        raise HTTPException(status_code=422, detail="Booking must be within opening hours")

    # 6) Stylist schedule, blocks and overlapping bookings
    if booking.staff_id is not None:
        staff = session.get(Staff, booking.staff_id)
        if staff is None or staff.salon_id != salon.id or not staff.is_active:
            raise HTTPException(status_code=422, detail="Staff not found or inactive")
        check_staff_free(session, staff, salon, starts_at, ends_at)

    # 7) Create and save booking
    db_booking = Booking(
        booking_code=generate_booking_code(),
        customer_id=current_user["id"],
        salon_id=salon.id,
        staff_id=booking.staff_id,
        starts_at=starts_at,
        ends_at=ends_at,
        total_duration=total_duration,
        total_amount=total_amount,
        note=booking.note,
    )

    session.add(db_booking)
    try:
        session.flush()
        for s in services:
            session.add(BookingService(
                booking_id=db_booking.id,
                service_id=s.id,
                price=s.price,
                duration=s.duration,
            ))
        notify_booking_created(
            session,
            current_user["id"],
            db_booking.booking_code,
            salon.name,
            booking.date.strftime("%d/%m/%Y"),
            format_hhmm(slot_time),
        )
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=409, detail="This time slot has just been booked")

    session.refresh(db_booking)
    logger.info(
        "Booking %s created: salon=%s staff=%s %s-%s",
        db_booking.booking_code, salon.id, db_booking.staff_id, starts_at, ends_at,
    )
    return booking_out(session, db_booking)


@router.get("", response_model=BookingPage)
def list_bookings(
    salon_id: Optional[int] = None,
    staff_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    status: Optional[BookingStatus] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    skip: int = Query(0, ge=0),
    take: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, Role.staff)
    if current_user["role"] != "SUPER_ADMIN":
        if salon_id is None:
            raise HTTPException(status_code=422, detail="salon_id is required")
        require_salon_member(session, current_user, salon_id)

    conditions = []
    if salon_id is not None:
        conditions.append(Booking.salon_id == salon_id)
    if staff_id is not None:
        conditions.append(Booking.staff_id == staff_id)
    if customer_id is not None:
        conditions.append(Booking.customer_id == customer_id)
    if status is not None:
        conditions.append(Booking.status == status.value)
    if date_from is not None:
        conditions.append(Booking.starts_at >= datetime.combine(date_from, time.min))
    if date_to is not None:
        conditions.append(Booking.starts_at < datetime.combine(date_to, time.min) + timedelta(days=1))

    stmt = select(Booking)
    count_stmt = select(func.count()).select_from(Booking)
    for c in conditions:
        stmt = stmt.where(c)
        count_stmt = count_stmt.where(c)
    return paginate(session, stmt, count_stmt, skip, take)


@router.get("/mine", response_model=BookingPage)
def list_my_bookings(
    status: Optional[BookingStatus] = None,
    skip: int = Query(0, ge=0),
    take: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    stmt = select(Booking).where(Booking.customer_id == current_user["id"])
    count_stmt = select(func.count()).select_from(Booking).where(Booking.customer_id == current_user["id"])
    if status is not None:
        stmt = stmt.where(Booking.status == status.value)
        count_stmt = count_stmt.where(Booking.status == status.value)
    return paginate(session, stmt, count_stmt, skip, take)


@router.get("/upcoming", response_model=List[BookingPublic])
def list_upcoming(
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    today = datetime.combine(now_local().date(), time.min)
    bookings = session.exec(
        select(Booking)
        .where(Booking.customer_id == current_user["id"])
        .where(Booking.starts_at >= today)
        .where(Booking.status.in_(("PENDING", "CONFIRMED")))
        .order_by(Booking.starts_at)
    ).all()
    return [booking_out(session, b) for b in bookings]


@router.get("/today/{salon_id}", response_model=List[BookingPublic])
def list_today(
    salon_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    get_salon_or_404(session, salon_id)
    require_salon_member(session, current_user, salon_id)

    today = datetime.combine(now_local().date(), time.min)
    bookings = session.exec(
        select(Booking)
        .where(Booking.salon_id == salon_id)
        .where(Booking.starts_at >= today)
        .where(Booking.starts_at < today + timedelta(days=1))
        .where(Booking.status.not_in(("CANCELLED", "NO_SHOW")))
        .order_by(Booking.starts_at)
    ).all()
    return [booking_out(session, b) for b in bookings]


@router.get("/code/{code}", response_model=BookingPublic)
def get_booking_by_code(
    code: str,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    booking = session.exec(select(Booking).where(Booking.booking_code == code.upper())).first()
    if booking is None:
        raise HTTPException(status_code=404, detail=f"Booking with code {code} not found")
    validate_booking_access(session, booking, current_user)
    return booking_out(session, booking)


@router.get("/{booking_id}", response_model=BookingPublic)
def get_booking(
    booking_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    booking = get_booking_or_404(session, booking_id)
    validate_booking_access(session, booking, current_user)
    return booking_out(session, booking)


@router.patch("/{booking_id}/status", response_model=BookingPublic)
def update_booking_status(
    booking_id: int,
    body: BookingStatusUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    booking = get_booking_or_404(session, booking_id)
    validate_booking_access(session, booking, current_user, salon_only=True)

    apply_status_change(session, booking, body.status.value, current_user, body.cancel_reason)
    session.commit()
    session.refresh(booking)
    return booking_out(session, booking)


@router.patch("/{booking_id}/cancel", response_model=BookingPublic)
def cancel_booking(
    booking_id: int,
    body: Optional[BookingCancel] = None,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    booking = get_booking_or_404(session, booking_id)
    validate_booking_access(session, booking, current_user)

    if booking.status == "CANCELLED":
        raise HTTPException(status_code=409, detail="Booking already cancelled")

    reason = body.reason if body is not None else None
    apply_status_change(session, booking, "CANCELLED", current_user, reason)
    session.commit()
    session.refresh(booking)
    return booking_out(session, booking)


@router.patch("/{booking_id}/assign-staff", response_model=BookingPublic)
def assign_staff(
    booking_id: int,
    body: StaffAssign,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    booking = get_booking_or_404(session, booking_id)
    validate_booking_access(session, booking, current_user, salon_only=True)

    if not VALID_TRANSITIONS[booking.status]:
        raise HTTPException(status_code=422, detail=f"Cannot reassign a {booking.status} booking")

    staff = session.get(Staff, body.staff_id)
    if staff is None or staff.salon_id != booking.salon_id or not staff.is_active:
        raise HTTPException(status_code=422, detail="Staff not found or does not belong to this salon")

    salon = session.get(Salon, booking.salon_id)
    check_staff_free(
        session, staff, salon, booking.starts_at, booking.ends_at,
        exclude_booking_id=booking.id,
    )

    booking.staff_id = staff.id
    session.add(booking)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=409, detail="Staff already has a booking at that time")

    session.refresh(booking)
    logger.info("Booking %s assigned to staff %s", booking.booking_code, staff.id)
    return booking_out(session, booking)
