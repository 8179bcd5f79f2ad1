# app/routers/staff_routes.py

import logging
from datetime import datetime, timedelta, date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select

from app.db import get_session
from app.models import Staff, StaffSchedule, StaffBlock, User, Booking, Salon
from app.schemas import (
    StaffCreate,
    StaffUpdate,
    StaffPublic,
    ScheduleDay,
    BlockCreate,
    BlockKind,
    BlockPublic,
    AvailabilityResponse,
)
from app.auth import get_current_user
from app.deps import require_salon_owner, get_salon_or_404, is_admin
from app.availability import staff_hours, staff_available_slots, resolve_services
from app.config import SLOT_MINUTES, DEFAULT_OPEN_TIME, DEFAULT_CLOSE_TIME
from app.core import format_hhmm, is_on_grid, overlaps, parse_hhmm

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/staff",
    tags=["staff"],
)

DEFAULT_START = parse_hhmm(DEFAULT_OPEN_TIME)
DEFAULT_END = parse_hhmm(DEFAULT_CLOSE_TIME)
DEFAULT_DAY_OFF = 6  # Sunday
LUNCH_BREAK_MINUTES = 30


def staff_out(session: Session, staff: Staff) -> dict:
    data = staff.model_dump()
    user = session.get(User, staff.user_id)
    data["name"] = user.name if user is not None else None
    return data


def get_staff_or_404(session: Session, staff_id: int) -> Staff:
    staff = session.get(Staff, staff_id)
    if staff is None:
        raise HTTPException(status_code=404, detail=f"Staff with ID {staff_id} not found")
    return staff


def require_schedule_access(session: Session, user: dict, staff: Staff) -> Salon:
    """The stylist themself, the salon owner or a super admin."""
    salon = get_salon_or_404(session, staff.salon_id)
    if staff.user_id == user["id"] or salon.owner_id == user["id"] or is_admin(user):
        return salon
    raise HTTPException(status_code=403, detail="You can only manage staff for your own salon")


def add_default_schedule(session: Session, staff_id: int):
    """Every day within the default hours, Sunday off."""
    for day in range(7):
        session.add(StaffSchedule(
            staff_id=staff_id,
            day_of_week=day,
            start_time=DEFAULT_START,
            end_time=DEFAULT_END,
            is_off=day == DEFAULT_DAY_OFF,
        ))


def demote_to_customer(session: Session, user_id: int):
    user = session.get(User, user_id)
    if user is not None and user.role == "STAFF":
        user.role = "CUSTOMER"
        session.add(user)


def remove_staff_member(session: Session, staff: Staff):
    """Delete a staff row with its schedule and blocks; demote the user back to customer."""
    for row in session.exec(select(StaffSchedule).where(StaffSchedule.staff_id == staff.id)).all():
        session.delete(row)
    for row in session.exec(select(StaffBlock).where(StaffBlock.staff_id == staff.id)).all():
        session.delete(row)

    demote_to_customer(session, staff.user_id)
    session.flush()
    session.delete(staff)


@router.post("", response_model=StaffPublic, status_code=201)
def create_staff(
    staff: StaffCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_salon_owner(session, current_user, staff.salon_id)

    user = session.get(User, staff.user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    existing = session.exec(select(Staff).where(Staff.user_id == staff.user_id)).first()
    if existing is not None:
        raise HTTPException(status_code=409, detail="User is already staff at a salon")

    if user.role == "CUSTOMER":
        user.role = "STAFF"
        session.add(user)

    db_staff = Staff(
        user_id=staff.user_id,
        salon_id=staff.salon_id,
        position=staff.position.value,
        bio=staff.bio,
    )
    session.add(db_staff)
    session.flush()  # fills db_staff.id for the schedule rows

    add_default_schedule(session, db_staff.id)

    session.commit()
    session.refresh(db_staff)
    logger.info("User %s added as staff %s of salon %s", user.id, db_staff.id, db_staff.salon_id)
    return staff_out(session, db_staff)


@router.get("/me", response_model=StaffPublic)
def get_my_staff_profile(
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    staff = session.exec(select(Staff).where(Staff.user_id == current_user["id"])).first()
    if staff is None:
        raise HTTPException(status_code=404, detail="You are not staff at any salon")
    return staff_out(session, staff)


@router.get("/salon/{salon_id}", response_model=List[StaffPublic])
def list_salon_staff(
    salon_id: int,
    include_inactive: bool = False,
    session: Session = Depends(get_session),
):
    get_salon_or_404(session, salon_id)
    stmt = select(Staff).where(Staff.salon_id == salon_id)
    if not include_inactive:
        stmt = stmt.where(Staff.is_active == True)  # noqa: E712
    return [staff_out(session, s) for s in session.exec(stmt.order_by(Staff.id)).all()]


@router.get("/{staff_id}", response_model=StaffPublic)
def get_staff(staff_id: int, session: Session = Depends(get_session)):
    return staff_out(session, get_staff_or_404(session, staff_id))


@router.patch("/{staff_id}", response_model=StaffPublic)
def update_staff(
    staff_id: int,
    changes: StaffUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    staff = get_staff_or_404(session, staff_id)
    require_salon_owner(session, current_user, staff.salon_id)

    data = changes.model_dump(exclude_unset=True, exclude_none=True)
    if data.get("position") is not None:
        data["position"] = data["position"].value
    for key, value in data.items():
        setattr(staff, key, value)

    session.add(staff)
    session.commit()
    session.refresh(staff)
    return staff_out(session, staff)


@router.patch("/{staff_id}/toggle-active", response_model=StaffPublic)
def toggle_staff_active(
    staff_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    staff = get_staff_or_404(session, staff_id)
    require_salon_owner(session, current_user, staff.salon_id)

    staff.is_active = not staff.is_active
    session.add(staff)
    session.commit()
    session.refresh(staff)
    return staff_out(session, staff)


@router.delete("/{staff_id}", status_code=204)
def delete_staff(
    staff_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    staff = get_staff_or_404(session, staff_id)
    require_salon_owner(session, current_user, staff.salon_id)

    has_bookings = session.exec(select(Booking).where(Booking.staff_id == staff_id)).first()
    if has_bookings is not None:
        # bookings keep pointing at the stylist; take them off the roster instead
        staff.is_active = False
        session.add(staff)
        demote_to_customer(session, staff.user_id)
    else:
        remove_staff_member(session, staff)
    session.commit()


@router.get("/{staff_id}/schedule", response_model=List[ScheduleDay])
def get_schedule(staff_id: int, session: Session = Depends(get_session)):
    get_staff_or_404(session, staff_id)
    return session.exec(
        select(StaffSchedule)
        .where(StaffSchedule.staff_id == staff_id)
        .order_by(StaffSchedule.day_of_week)
    ).all()


@router.put("/{staff_id}/schedule", response_model=List[ScheduleDay])
def update_schedule(
    staff_id: int,
    schedule: List[ScheduleDay],
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    staff = get_staff_or_404(session, staff_id)
    require_schedule_access(session, current_user, staff)

    if not schedule:
        raise HTTPException(status_code=422, detail="schedule must contain at least one day")
    days = [d.day_of_week for d in schedule]
    if len(days) != len(set(days)):
        raise HTTPException(status_code=422, detail="schedule cannot contain duplicate days")
    for d in schedule:
        if not d.is_off and d.start_time >= d.end_time:
            raise HTTPException(status_code=422, detail="start_time must be before end_time")

    # DB upsert: one row per (staff, weekday)
    for d in schedule:
        row = session.exec(
            select(StaffSchedule)
            .where(StaffSchedule.staff_id == staff_id)
            .where(StaffSchedule.day_of_week == d.day_of_week)
        ).first()
        if row is None:
            row = StaffSchedule(staff_id=staff_id, **d.model_dump())
        else:
            row.start_time = d.start_time
            row.end_time = d.end_time
            row.is_off = d.is_off
        session.add(row)

    session.commit()
    return get_schedule(staff_id, session)


@router.post("/{staff_id}/blocks", response_model=BlockPublic, status_code=201)
def create_block(
    staff_id: int,
    block: BlockCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    staff = get_staff_or_404(session, staff_id)
    salon = require_schedule_access(session, current_user, staff)

    hours = staff_hours(session, staff, salon, block.date)
    if hours is None:
        raise HTTPException(status_code=422, detail="Not scheduled to work that day")

    work_start = datetime.combine(block.date, hours[0])
    work_end = datetime.combine(block.date, hours[1])
    if block.kind == BlockKind.lunch_break:
        if block.start_time is None:
            raise HTTPException(status_code=422, detail="start_time is required for a lunch break")
        if not is_on_grid(block.start_time, SLOT_MINUTES):
            raise HTTPException(status_code=422, detail=f"Time must be in increments of {SLOT_MINUTES} minutes")
        block_start = datetime.combine(block.date, block.start_time)
        block_end = block_start + timedelta(minutes=LUNCH_BREAK_MINUTES)
    else:
        block_start = work_start
        block_end = work_end

    if block_start < work_start or block_end > work_end:
        raise HTTPException(status_code=422, detail="Block must be within working hours")

    existing_blocks = session.exec(
        select(StaffBlock)
        .where(StaffBlock.staff_id == staff_id)
        .where(StaffBlock.date == block.date)
    ).all()
    for existing_block in existing_blocks:
        if overlaps(block_start, block_end, existing_block.start, existing_block.end):
            raise HTTPException(status_code=409, detail="Block overlaps existing block")

    db_block = StaffBlock(
        staff_id=staff_id,
        date=block.date,
        start=block_start,
        end=block_end,
        kind=block.kind.value,
    )
    session.add(db_block)
    session.commit()
    session.refresh(db_block)
    return db_block


@router.get("/{staff_id}/blocks", response_model=List[BlockPublic])
def list_blocks(
    staff_id: int,
    on_date: Optional[date] = Query(default=None, alias="date"),
    session: Session = Depends(get_session),
):
    get_staff_or_404(session, staff_id)
    stmt = select(StaffBlock).where(StaffBlock.staff_id == staff_id)
    if on_date is not None:
        stmt = stmt.where(StaffBlock.date == on_date)
    return session.exec(stmt.order_by(StaffBlock.start)).all()


@router.delete("/{staff_id}/blocks/{block_id}", status_code=204)
def delete_block(
    staff_id: int,
    block_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    staff = get_staff_or_404(session, staff_id)
    require_schedule_access(session, current_user, staff)

    block = session.get(StaffBlock, block_id)
    if block is None or block.staff_id != staff_id:
        raise HTTPException(status_code=404, detail="Block not found")
    session.delete(block)
    session.commit()


@router.get("/{staff_id}/available-slots", response_model=AvailabilityResponse)
def staff_availability(
    staff_id: int,
    date: date,
    service_ids: List[int] = Query(default=[]),
    session: Session = Depends(get_session),
):
    staff = get_staff_or_404(session, staff_id)
    salon = get_salon_or_404(session, staff.salon_id)

    duration = SLOT_MINUTES
    if service_ids:
        duration = sum(s.duration for s in resolve_services(session, salon.id, service_ids))

    starts = []
    if staff.is_active and salon.is_active:
        starts = staff_available_slots(session, staff, salon, date, duration)

    return {
        "salon_id": salon.id,
        "staff_id": staff_id,
        "date": date,
        "duration": duration,
        "available_starts": [format_hhmm(s) for s in starts],
    }
