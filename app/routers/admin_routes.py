# app/routers/admin_routes.py

import logging
from datetime import datetime, time, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, or_
from sqlmodel import Session, select

from app.db import get_session
from app.models import User, Salon, Booking, Payment
from app.schemas import Role, RoleUpdate, UserPublic, BookingStatus, BookingPage
from app.auth import get_current_user, user_to_dict
from app.deps import require_role
from app.core import now_local
from app.routers.bookings_routes import paginate

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
)


def require_admin(current_user: dict = Depends(get_current_user)) -> dict:
    require_role(current_user, Role.super_admin)
    return current_user


def get_user_or_404(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail=f"User with ID {user_id} not found")
    return user


def count(session: Session, model, *conditions) -> int:
    stmt = select(func.count()).select_from(model)
    for c in conditions:
        stmt = stmt.where(c)
    return session.exec(stmt).one()


@router.get("/dashboard")
def dashboard(
    session: Session = Depends(get_session),
    admin: dict = Depends(require_admin),
):
    today = datetime.combine(now_local().date(), time.min)
    start_of_month = today.replace(day=1)

    revenue = session.exec(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.status == "PAID")
    ).one()
    month_revenue = session.exec(
        select(func.coalesce(func.sum(Payment.amount), 0))
        .where(Payment.status == "PAID")
        .where(Payment.paid_at >= start_of_month)
    ).one()

    return {
        "total_users": count(session, User),
        "total_customers": count(session, User, User.role == "CUSTOMER"),
        "total_salons": count(session, Salon),
        "active_salons": count(session, Salon, Salon.is_active == True),  # noqa: E712
        "total_bookings": count(session, Booking),
        "today_bookings": count(
            session, Booking,
            Booking.starts_at >= today,
            Booking.starts_at < today + timedelta(days=1),
        ),
        "pending_bookings": count(session, Booking, Booking.status == "PENDING"),
        "total_revenue": int(revenue),
        "month_revenue": int(month_revenue),
    }


@router.get("/users")
def list_users(
    role: Optional[Role] = None,
    search: Optional[str] = None,
    skip: int = Query(0, ge=0),
    take: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
    admin: dict = Depends(require_admin),
):
    conditions = []
    if role is not None:
        conditions.append(User.role == role.value)
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(User.name.ilike(pattern), User.email.ilike(pattern), User.phone.ilike(pattern)))

    stmt = select(User)
    for c in conditions:
        stmt = stmt.where(c)
    users = session.exec(stmt.order_by(User.created_at.desc(), User.id.desc()).offset(skip).limit(take)).all()
    total = count(session, User, *conditions)

    return {
        "data": [user_to_dict(u) for u in users],
        "meta": {"total": total, "skip": skip, "take": take, "has_more": skip + take < total},
    }


@router.patch("/users/{user_id}/role", response_model=UserPublic)
def change_role(
    user_id: int,
    body: RoleUpdate,
    session: Session = Depends(get_session),
    admin: dict = Depends(require_admin),
):
    user = get_user_or_404(session, user_id)
    if user.id == admin["id"] and body.role != Role.super_admin:
        raise HTTPException(status_code=422, detail="You cannot demote yourself")

    user.role = body.role.value
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("User %s role set to %s by admin %s", user.id, user.role, admin["id"])
    return user_to_dict(user)


def set_active(session: Session, user_id: int, admin: dict, active: bool) -> dict:
    user = get_user_or_404(session, user_id)
    if user.id == admin["id"]:
        raise HTTPException(status_code=422, detail="You cannot change your own account status")

    user.is_active = active
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("User %s %s by admin %s", user.id, "activated" if active else "deactivated", admin["id"])
    return user_to_dict(user)


@router.patch("/users/{user_id}/deactivate", response_model=UserPublic)
def deactivate_user(
    user_id: int,
    session: Session = Depends(get_session),
    admin: dict = Depends(require_admin),
):
    return set_active(session, user_id, admin, False)


@router.patch("/users/{user_id}/activate", response_model=UserPublic)
def activate_user(
    user_id: int,
    session: Session = Depends(get_session),
    admin: dict = Depends(require_admin),
):
    return set_active(session, user_id, admin, True)


@router.get("/bookings", response_model=BookingPage)
def list_all_bookings(
    salon_id: Optional[int] = None,
    status: Optional[BookingStatus] = None,
    skip: int = Query(0, ge=0),
    take: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
    admin: dict = Depends(require_admin),
):
    stmt = select(Booking)
    count_stmt = select(func.count()).select_from(Booking)
    if salon_id is not None:
        stmt = stmt.where(Booking.salon_id == salon_id)
        count_stmt = count_stmt.where(Booking.salon_id == salon_id)
    if status is not None:
        stmt = stmt.where(Booking.status == status.value)
        count_stmt = count_stmt.where(Booking.status == status.value)
    return paginate(session, stmt, count_stmt, skip, take)
