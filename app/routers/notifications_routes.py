# app/routers/notifications_routes.py

import logging
from datetime import datetime, timedelta, time

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlmodel import Session, select

from app.db import get_session
from app.models import Notification, Booking, Salon
from app.schemas import NotificationPublic, NotificationPage
from app.auth import get_current_user
from app.deps import get_salon_or_404, require_salon_member
from app.core import now_local, format_hhmm
from app.notifications import notify_booking_reminder

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/notifications",
    tags=["notifications"],
)


def unread_count(session: Session, user_id: int) -> int:
    return session.exec(
        select(func.count()).select_from(Notification)
        .where(Notification.user_id == user_id)
        .where(Notification.is_read == False)  # noqa: E712
    ).one()


def get_own_notification(session: Session, notification_id: int, user: dict) -> Notification:
    notification = session.get(Notification, notification_id)
    if notification is None or notification.user_id != user["id"]:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification


@router.get("", response_model=NotificationPage)
def list_notifications(
    unread_only: bool = False,
    skip: int = Query(0, ge=0),
    take: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    stmt = select(Notification).where(Notification.user_id == current_user["id"])
    count_stmt = select(func.count()).select_from(Notification).where(
        Notification.user_id == current_user["id"]
    )
    if unread_only:
        stmt = stmt.where(Notification.is_read == False)  # noqa: E712
        count_stmt = count_stmt.where(Notification.is_read == False)  # noqa: E712

    total = session.exec(count_stmt).one()
    notifications = session.exec(
        stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(skip).limit(take)
    ).all()

    return {
        "data": notifications,
        "meta": {
            "total": total,
            "skip": skip,
            "take": take,
            "has_more": skip + take < total,
            "unread_count": unread_count(session, current_user["id"]),
        },
    }


@router.get("/unread-count")
def get_unread_count(
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    return {"count": unread_count(session, current_user["id"])}


@router.patch("/read-all")
def mark_all_read(
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    now = now_local()
    unread = session.exec(
        select(Notification)
        .where(Notification.user_id == current_user["id"])
        .where(Notification.is_read == False)  # noqa: E712
    ).all()
    for notification in unread:
        notification.is_read = True
        notification.read_at = now
        session.add(notification)
    session.commit()
    return {"updated": len(unread)}


@router.patch("/{notification_id}/read", response_model=NotificationPublic)
def mark_read(
    notification_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    notification = get_own_notification(session, notification_id, current_user)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = now_local()
        session.add(notification)
        session.commit()
        session.refresh(notification)
    return notification


@router.delete("/{notification_id}", status_code=204)
def delete_notification(
    notification_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    notification = get_own_notification(session, notification_id, current_user)
    session.delete(notification)
    session.commit()


@router.delete("")
def delete_all_notifications(
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    notifications = session.exec(
        select(Notification).where(Notification.user_id == current_user["id"])
    ).all()
    for notification in notifications:
        session.delete(notification)
    session.commit()
    return {"deleted": len(notifications)}


@router.post("/reminders/salon/{salon_id}")
def send_today_reminders(
    salon_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    """Remind customers of the salon's confirmed bookings still ahead today."""
    salon: Salon = get_salon_or_404(session, salon_id)
    require_salon_member(session, current_user, salon_id)

    now = now_local()
    end_of_day = datetime.combine(now.date(), time.min) + timedelta(days=1)
    bookings = session.exec(
        select(Booking)
        .where(Booking.salon_id == salon_id)
        .where(Booking.status == "CONFIRMED")
        .where(Booking.starts_at >= now)
        .where(Booking.starts_at < end_of_day)
        .order_by(Booking.starts_at)
    ).all()

    for booking in bookings:
        notify_booking_reminder(
            session,
            booking.customer_id,
            booking.booking_code,
            salon.name,
            salon.address,
            format_hhmm(booking.starts_at),
        )
    session.commit()

    logger.info("Sent %s reminders for salon %s", len(bookings), salon_id)
    return {"sent": len(bookings)}
