# app/routers/payments_routes.py

import logging
import re
from datetime import datetime, timedelta, time
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.db import get_session
from app.models import Booking, Payment, Salon, User
from app.schemas import (
    PaymentCreate,
    PaymentPublic,
    PaymentConfirm,
    PaymentStatusResponse,
    QRRequest,
    QRCodeResponse,
    SepayWebhookPayload,
    StatsPeriod,
    WebhookResult,
    Role,
)
from app.auth import get_current_user
from app.deps import require_role, require_salon_owner
from app.config import PAYMENT_TIMEOUT_MINUTES, SEPAY_WEBHOOK_SECRET, BOOKING_CODE_PREFIX
from app.core import now_local
from app.notifications import notify_payment_received
from app.routers.bookings_routes import get_booking_or_404, validate_booking_access
from app.vietqr import build_qr_content, build_qr_url

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/payments",
    tags=["payments"],
)

BOOKING_CODE_RE = re.compile(rf"{BOOKING_CODE_PREFIX}[A-Z0-9]{{10}}")
SEPAY_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_payment_or_404(session: Session, payment_id: int) -> Payment:
    payment = session.get(Payment, payment_id)
    if payment is None:
        raise HTTPException(status_code=404, detail="Payment not found")
    return payment


def payment_for_booking(session: Session, booking_id: int) -> Optional[Payment]:
    return session.exec(select(Payment).where(Payment.booking_id == booking_id)).first()


def require_bank_info(salon: Salon):
    if not salon.bank_code or not salon.bank_account:
        raise HTTPException(status_code=422, detail="Salon does not have bank information configured")


def open_payment_window(payment: Payment, booking: Booking, salon: Salon, now: datetime):
    """Fill transfer details and start a fresh confirmation window."""
    payment.bank_code = salon.bank_code
    payment.bank_account = salon.bank_account
    payment.transfer_content = booking.booking_code
    if payment.method == "VIETQR":
        payment.qr_code = build_qr_url(
            salon.bank_code,
            salon.bank_account,
            salon.bank_name or salon.name,
            payment.amount,
            booking.booking_code,
        )
        payment.qr_content = build_qr_content(
            salon.bank_code, salon.bank_account, payment.amount, booking.booking_code
        )
    payment.status = "PENDING"
    payment.expires_at = now + timedelta(minutes=PAYMENT_TIMEOUT_MINUTES)


def expire_if_overdue(session: Session, payment: Payment, now: Optional[datetime] = None) -> bool:
    """PENDING past its deadline becomes FAILED. Returns True when it changed."""
    now = now or now_local()
    if payment.status != "PENDING" or payment.expires_at is None or payment.expires_at > now:
        return False

    payment.status = "FAILED"
    session.add(payment)
    booking = session.get(Booking, payment.booking_id)
    if booking is not None and booking.payment_status == "PENDING":
        booking.payment_status = "FAILED"
        session.add(booking)
    session.commit()
    session.refresh(payment)
    logger.info("Payment %s for booking %s expired", payment.id, payment.booking_id)
    return True


def seconds_left(payment: Payment, now: datetime) -> int:
    if payment.status != "PENDING" or payment.expires_at is None:
        return 0
    return max(0, int((payment.expires_at - now).total_seconds()))


def mark_paid(
    session: Session,
    payment: Payment,
    booking: Booking,
    transaction_id: Optional[str] = None,
    reference: Optional[str] = None,
    paid_at: Optional[datetime] = None,
):
    """Settle the payment and its booking; the caller commits."""
    payment.status = "PAID"
    payment.paid_at = paid_at or now_local()
    if transaction_id:
        payment.sepay_trans_id = transaction_id
    if reference:
        payment.sepay_ref = reference
    session.add(payment)

    booking.payment_status = "PAID"
    if booking.status == "PENDING":
        booking.status = "CONFIRMED"
    session.add(booking)

    notify_payment_received(session, booking.customer_id, booking.booking_code, payment.amount)


def qr_response(payment: Payment, salon: Salon) -> dict:
    return {
        "payment_id": payment.id,
        "booking_id": payment.booking_id,
        "status": payment.status,
        "qr_code": payment.qr_code,
        "qr_content": payment.qr_content,
        "amount": payment.amount,
        "bank_code": payment.bank_code,
        "bank_account": payment.bank_account,
        "bank_name": salon.bank_name,
        "transfer_content": payment.transfer_content,
        "expires_at": payment.expires_at,
    }


@router.post("", response_model=PaymentPublic, status_code=201)
def create_payment(
    body: PaymentCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    booking = get_booking_or_404(session, body.booking_id)
    validate_booking_access(session, booking, current_user)

    if booking.status in ("CANCELLED", "NO_SHOW"):
        raise HTTPException(status_code=422, detail=f"Cannot pay for a {booking.status} booking")
    if payment_for_booking(session, booking.id) is not None:
        raise HTTPException(status_code=409, detail="Payment already exists for this booking")

    salon = session.get(Salon, booking.salon_id)
    method = body.method.value
    payment = Payment(booking_id=booking.id, amount=booking.total_amount, method=method)
    if method != "CASH":
        require_bank_info(salon)
        open_payment_window(payment, booking, salon, now_local())

    booking.payment_method = method
    booking.payment_status = "PENDING"
    session.add(payment)
    session.add(booking)
    session.commit()
    session.refresh(payment)

    logger.info("Payment %s (%s) created for booking %s", payment.id, method, booking.booking_code)
    return payment


@router.post("/create-qr", response_model=QRCodeResponse)
def create_qr(
    body: QRRequest,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    booking = get_booking_or_404(session, body.booking_id)
    validate_booking_access(session, booking, current_user)
    if booking.status in ("CANCELLED", "NO_SHOW"):
        raise HTTPException(status_code=422, detail=f"Cannot pay for a {booking.status} booking")

    salon = session.get(Salon, booking.salon_id)
    require_bank_info(salon)

    now = now_local()
    payment = payment_for_booking(session, booking.id)
    if payment is not None:
        if payment.status == "PAID":
            raise HTTPException(status_code=409, detail="Booking is already paid")
        expire_if_overdue(session, payment, now)
        if payment.status == "PENDING" and payment.method == "VIETQR":
            return qr_response(payment, salon)
        if payment.status == "FAILED":
            payment.attempts += 1
        payment.method = "VIETQR"
    else:
        payment = Payment(booking_id=booking.id, amount=booking.total_amount, method="VIETQR")

    open_payment_window(payment, booking, salon, now)
    booking.payment_method = "VIETQR"
    booking.payment_status = "PENDING"
    session.add(payment)
    session.add(booking)
    session.commit()
    session.refresh(payment)

    logger.info(
        "QR payment %s for booking %s open until %s (attempt %s)",
        payment.id, booking.booking_code, payment.expires_at, payment.attempts,
    )
    return qr_response(payment, salon)


@router.get("/booking/{booking_id}", response_model=Optional[PaymentPublic])
def get_payment_by_booking(
    booking_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    booking = get_booking_or_404(session, booking_id)
    validate_booking_access(session, booking, current_user)

    payment = payment_for_booking(session, booking_id)
    if payment is not None:
        expire_if_overdue(session, payment)
    return payment


@router.get("/stats/{salon_id}")
def payment_stats(
    salon_id: int,
    period: StatsPeriod = StatsPeriod.month,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, Role.salon_owner)
    require_salon_owner(session, current_user, salon_id)

    now = now_local()
    if period == StatsPeriod.day:
        since = datetime.combine(now.date(), time.min)
    elif period == StatsPeriod.week:
        since = now - timedelta(days=7)
    else:
        since = now - timedelta(days=30)

    def aggregate(*conditions):
        stmt = (
            select(func.coalesce(func.sum(Payment.amount), 0), func.count(Payment.id))
            .select_from(Payment)
            .join(Booking, Booking.id == Payment.booking_id)
            .where(Booking.salon_id == salon_id)
        )
        for c in conditions:
            stmt = stmt.where(c)
        total, count = session.exec(stmt).one()
        return int(total), count

    total_paid, paid_count = aggregate(Payment.status == "PAID", Payment.paid_at >= since)
    total_pending, pending_count = aggregate(Payment.status == "PENDING")

    recent = session.exec(
        select(Payment, Booking, User)
        .join(Booking, Booking.id == Payment.booking_id)
        .join(User, User.id == Booking.customer_id)
        .where(Booking.salon_id == salon_id)
        .where(Payment.paid_at >= since)
        .order_by(Payment.paid_at.desc())
        .limit(10)
    ).all()

    return {
        "period": period.value,
        "total_paid": total_paid,
        "paid_count": paid_count,
        "total_pending": total_pending,
        "pending_count": pending_count,
        "recent_transactions": [
            {
                "payment_id": p.id,
                "booking_code": b.booking_code,
                "customer_name": u.name,
                "amount": p.amount,
                "method": p.method,
                "paid_at": p.paid_at,
            }
            for p, b, u in recent
        ],
    }


@router.post("/webhook/sepay", response_model=WebhookResult)
def sepay_webhook(
    payload: SepayWebhookPayload,
    authorization: Optional[str] = Header(default=None),
    session: Session = Depends(get_session),
):
    """Bank transfer notification from Sepay. Business failures answer success=false."""
    if SEPAY_WEBHOOK_SECRET and authorization != f"Bearer {SEPAY_WEBHOOK_SECRET}":
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    if payload.transfer_type != "in":
        return {"success": False, "message": "Ignored outgoing transfer"}

    match = BOOKING_CODE_RE.search(payload.content.upper())
    if match is None and payload.description:
        match = BOOKING_CODE_RE.search(payload.description.upper())
    if match is None:
        logger.warning("Sepay transaction %s without booking code: %r", payload.id, payload.content)
        return {"success": False, "message": "Could not extract booking code from transfer content"}

    booking_code = match.group(0)
    booking = session.exec(select(Booking).where(Booking.booking_code == booking_code)).first()
    if booking is None:
        return {"success": False, "message": f"Booking with code {booking_code} not found"}

    payment = payment_for_booking(session, booking.id)
    if payment is None:
        return {"success": False, "message": "No payment record found for booking"}

    if payload.transfer_amount < payment.amount:
        logger.warning(
            "Sepay transaction %s for %s underpaid: %s < %s",
            payload.id, booking_code, payload.transfer_amount, payment.amount,
        )
        return {
            "success": False,
            "message": f"Transfer amount ({payload.transfer_amount:.0f}) is less than required ({payment.amount})",
        }

    if payment.status == "PAID":
        return {"success": True, "message": "Payment already confirmed"}

    paid_at = None
    if payload.transaction_date:
        try:
            paid_at = datetime.strptime(payload.transaction_date, SEPAY_DATE_FORMAT)
        except ValueError:
            logger.warning("Unparseable Sepay transactionDate %r", payload.transaction_date)

    try:
        mark_paid(
            session,
            payment,
            booking,
            transaction_id=str(payload.id),
            reference=payload.reference_code,
            paid_at=paid_at,
        )
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Sepay webhook failed for booking %s", booking_code)
        return {"success": False, "message": "Internal error processing webhook"}

    logger.info("Payment confirmed by Sepay for booking %s (transaction %s)", booking_code, payload.id)
    return {"success": True, "message": f"Payment confirmed for booking {booking_code}"}


@router.get("/{payment_id}", response_model=PaymentPublic)
def get_payment(
    payment_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    payment = get_payment_or_404(session, payment_id)
    validate_booking_access(session, get_booking_or_404(session, payment.booking_id), current_user)
    expire_if_overdue(session, payment)
    return payment


@router.get("/{booking_id}/status", response_model=PaymentStatusResponse)
def get_payment_status(
    booking_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    booking = get_booking_or_404(session, booking_id)
    validate_booking_access(session, booking, current_user)

    now = now_local()
    payment = payment_for_booking(session, booking_id)
    if payment is None:
        return {
            "booking_id": booking.id,
            "status": booking.payment_status,
            "booking_status": booking.status,
        }

    expire_if_overdue(session, payment, now)
    session.refresh(booking)
    return {
        "booking_id": booking.id,
        "payment_id": payment.id,
        "status": payment.status,
        "booking_status": booking.status,
        "expires_at": payment.expires_at,
        "seconds_left": seconds_left(payment, now),
    }


@router.post("/{payment_id}/retry", response_model=PaymentPublic)
def retry_payment(
    payment_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    payment = get_payment_or_404(session, payment_id)
    booking = get_booking_or_404(session, payment.booking_id)
    validate_booking_access(session, booking, current_user)

    now = now_local()
    expire_if_overdue(session, payment, now)
    if payment.status == "PAID":
        raise HTTPException(status_code=409, detail="Payment already completed")
    if payment.status != "FAILED":
        raise HTTPException(status_code=409, detail="Payment is still awaiting confirmation")
    if booking.status in ("CANCELLED", "NO_SHOW"):
        raise HTTPException(status_code=422, detail=f"Cannot pay for a {booking.status} booking")

    salon = session.get(Salon, booking.salon_id)
    if payment.method != "CASH":
        require_bank_info(salon)
        open_payment_window(payment, booking, salon, now)
    else:
        payment.status = "PENDING"
    payment.attempts += 1

    booking.payment_status = "PENDING"
    session.add(payment)
    session.add(booking)
    session.commit()
    session.refresh(payment)

    logger.info("Payment %s retried (attempt %s)", payment.id, payment.attempts)
    return payment


@router.post("/{payment_id}/confirm", response_model=PaymentPublic)
def confirm_payment(
    payment_id: int,
    body: Optional[PaymentConfirm] = None,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, Role.staff)
    payment = get_payment_or_404(session, payment_id)
    booking = get_booking_or_404(session, payment.booking_id)
    validate_booking_access(session, booking, current_user, salon_only=True)

    if payment.status == "PAID":
        return payment

    transaction_id = body.transaction_id if body is not None else None
    mark_paid(session, payment, booking, transaction_id=transaction_id)
    session.commit()
    session.refresh(payment)

    logger.info("Payment %s confirmed manually by user %s", payment.id, current_user["id"])
    return payment
