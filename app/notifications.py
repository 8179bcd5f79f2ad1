# app/notifications.py

import logging
from typing import Optional

from sqlmodel import Session

from app.models import Notification

logger = logging.getLogger(__name__)


def format_vnd(amount: int) -> str:
    return f"{amount:,}".replace(",", ".") + "đ"


def create_notification(
    session: Session,
    user_id: int,
    type: str,
    title: str,
    message: str,
    data: Optional[dict] = None,
) -> Notification:
    """Adds a notification to the session; the caller commits."""
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        data=data,
    )
    session.add(notification)
    logger.debug("Queued %s notification for user %s", type, user_id)
    return notification


def notify_booking_created(session, user_id, booking_code, salon_name, date, time):
    return create_notification(
        session,
        user_id,
        "BOOKING_CREATED",
        "Đặt lịch thành công",
        f"Bạn đã đặt lịch tại {salon_name} vào {time} ngày {date}. Mã đặt lịch: {booking_code}",
        {"booking_code": booking_code, "salon_name": salon_name, "date": date, "time": time},
    )


def notify_booking_confirmed(session, user_id, booking_code, salon_name):
    return create_notification(
        session,
        user_id,
        "BOOKING_CONFIRMED",
        "Lịch hẹn đã được xác nhận",
        f"Lịch hẹn {booking_code} tại {salon_name} đã được xác nhận. Vui lòng đến đúng giờ!",
        {"booking_code": booking_code, "salon_name": salon_name},
    )


def notify_booking_cancelled(session, user_id, booking_code, reason=None):
    if reason:
        message = f"Lịch hẹn {booking_code} đã bị hủy. Lý do: {reason}"
    else:
        message = f"Lịch hẹn {booking_code} đã bị hủy."
    return create_notification(
        session,
        user_id,
        "BOOKING_CANCELLED",
        "Lịch hẹn đã bị hủy",
        message,
        {"booking_code": booking_code, "reason": reason},
    )


def notify_booking_reminder(session, user_id, booking_code, salon_name, salon_address, time):
    return create_notification(
        session,
        user_id,
        "BOOKING_REMINDER",
        "Nhắc nhở lịch hẹn",
        f"Bạn có lịch hẹn tại {salon_name} lúc {time} hôm nay. Địa chỉ: {salon_address}",
        {
            "booking_code": booking_code,
            "salon_name": salon_name,
            "salon_address": salon_address,
            "time": time,
        },
    )


def notify_payment_received(session, user_id, booking_code, amount):
    return create_notification(
        session,
        user_id,
        "PAYMENT_RECEIVED",
        "Thanh toán thành công",
        f"Đã nhận thanh toán {format_vnd(amount)} cho đơn hàng {booking_code}",
        {"booking_code": booking_code, "amount": amount},
    )


def notify_new_review(session, owner_id, customer_name, rating, salon_name):
    return create_notification(
        session,
        owner_id,
        "REVIEW_RECEIVED",
        "Đánh giá mới",
        f"{customer_name} đã đánh giá {rating} sao cho {salon_name}",
        {"customer_name": customer_name, "rating": rating, "salon_name": salon_name},
    )
