# app/availability.py
"""
Database-backed availability: working windows, busy intervals and free
start times for stylists and salons.
"""

import logging
from datetime import datetime, date, time, timedelta
from typing import List, Optional, Sequence, Tuple

from fastapi import HTTPException
from sqlmodel import Session, select

from app.config import SLOT_MINUTES
from app.core import Interval, generate_slots, free_slots, overlaps, now_local
from app.models import Booking, Salon, Service, Staff, StaffBlock, StaffSchedule

logger = logging.getLogger(__name__)

# Bookings in these states free their slot again
RELEASED_STATUSES = ("CANCELLED", "NO_SHOW")

Window = Tuple[time, time]


def salon_window(salon: Salon, day: date) -> Optional[Window]:
    if day.weekday() not in (salon.working_days or []):
        return None
    if salon.open_time >= salon.close_time:
        return None
    return salon.open_time, salon.close_time


def staff_hours(session: Session, staff: Staff, salon: Salon, day: date) -> Optional[Window]:
    """Weekly schedule for the day clipped to salon hours, ignoring blocks."""
    window = salon_window(salon, day)
    if window is None:
        return None

    schedule = session.exec(
        select(StaffSchedule)
        .where(StaffSchedule.staff_id == staff.id)
        .where(StaffSchedule.day_of_week == day.weekday())
    ).first()
    if schedule is not None:
        if schedule.is_off:
            return None
        start = max(window[0], schedule.start_time)
        end = min(window[1], schedule.end_time)
        if start >= end:
            return None
        window = (start, end)
    return window


def staff_window(session: Session, staff: Staff, salon: Salon, day: date) -> Optional[Window]:
    """Working window for the day, or None when off, closed or on a day_off block."""
    window = staff_hours(session, staff, salon, day)
    if window is None:
        return None

    day_off = session.exec(
        select(StaffBlock)
        .where(StaffBlock.staff_id == staff.id)
        .where(StaffBlock.date == day)
        .where(StaffBlock.kind == "day_off")
    ).first()
    if day_off is not None:
        return None

    return window


def staff_blocks(session: Session, staff_id: int, day: date) -> List[StaffBlock]:
    return session.exec(
        select(StaffBlock)
        .where(StaffBlock.staff_id == staff_id)
        .where(StaffBlock.date == day)
    ).all()


def staff_bookings(
    session: Session,
    staff_id: int,
    day: date,
    exclude_booking_id: Optional[int] = None,
) -> List[Booking]:
    day_start = datetime.combine(day, time.min)
    day_end = day_start + timedelta(days=1)

    stmt = (
        select(Booking)
        .where(Booking.staff_id == staff_id)
        .where(Booking.starts_at < day_end)
        .where(Booking.ends_at > day_start)
        .where(Booking.status.not_in(RELEASED_STATUSES))
    )
    if exclude_booking_id is not None:
        stmt = stmt.where(Booking.id != exclude_booking_id)
    return session.exec(stmt).all()


def busy_intervals(session: Session, staff_id: int, day: date) -> List[Interval]:
    busy = [(b.start, b.end) for b in staff_blocks(session, staff_id, day)]
    busy.extend((a.starts_at, a.ends_at) for a in staff_bookings(session, staff_id, day))
    return busy


def staff_available_slots(
    session: Session,
    staff: Staff,
    salon: Salon,
    day: date,
    duration: int,
    now: Optional[datetime] = None,
) -> List[datetime]:
    window = staff_window(session, staff, salon, day)
    if window is None:
        return []

    candidates = generate_slots(day, window[0], window[1], SLOT_MINUTES, duration)
    return free_slots(
        candidates,
        duration,
        busy_intervals(session, staff.id, day),
        not_before=now or now_local(),
    )


def salon_available_slots(
    session: Session,
    salon: Salon,
    day: date,
    duration: int,
    now: Optional[datetime] = None,
) -> List[datetime]:
    """Starts where at least one active stylist is free; salon hours if it has no staff."""
    now = now or now_local()
    members = session.exec(
        select(Staff)
        .where(Staff.salon_id == salon.id)
        .where(Staff.is_active == True)  # noqa: E712
    ).all()

    if not members:
        window = salon_window(salon, day)
        if window is None:
            return []
        candidates = generate_slots(day, window[0], window[1], SLOT_MINUTES, duration)
        return free_slots(candidates, duration, [], not_before=now)

    starts = set()
    for member in members:
        starts.update(staff_available_slots(session, member, salon, day, duration, now=now))
    return sorted(starts)


def check_staff_free(
    session: Session,
    staff: Staff,
    salon: Salon,
    start: datetime,
    end: datetime,
    exclude_booking_id: Optional[int] = None,
):
    day = start.date()
    window = staff_window(session, staff, salon, day)
    if window is None:
        raise HTTPException(status_code=422, detail="Staff is not working that day")

    work_start = datetime.combine(day, window[0])
    work_end = datetime.combine(day, window[1])
    if start < work_start or end > work_end:
        raise HTTPException(status_code=422, detail="Booking must be within staff working hours")

    for b in staff_blocks(session, staff.id, day):
        if overlaps(start, end, b.start, b.end):
            raise HTTPException(status_code=409, detail="Booking overlaps a staff block")

    for a in staff_bookings(session, staff.id, day, exclude_booking_id=exclude_booking_id):
        if overlaps(start, end, a.starts_at, a.ends_at):
            logger.info(
                "Slot %s-%s for staff %s conflicts with booking %s",
                start, end, staff.id, a.booking_code,
            )
            raise HTTPException(status_code=409, detail="Staff is not available at this time")


def resolve_services(session: Session, salon_id: int, service_ids: Sequence[int]) -> List[Service]:
    """Active services of the salon, in request order; 422 if any id is unknown."""
    unique_ids = list(dict.fromkeys(service_ids))
    services = session.exec(
        select(Service)
        .where(Service.id.in_(unique_ids))
        .where(Service.salon_id == salon_id)
        .where(Service.is_active == True)  # noqa: E712
    ).all()
    if len(services) != len(unique_ids):
        raise HTTPException(status_code=422, detail="Some services are invalid or inactive")

    by_id = {s.id: s for s in services}
    return [by_id[i] for i in unique_ids]
