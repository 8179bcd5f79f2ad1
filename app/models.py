# app/models.py

from typing import Optional, List
from datetime import datetime, date as Date, time

from sqlalchemy import UniqueConstraint, CheckConstraint, Index, text
from sqlalchemy.types import JSON
from sqlmodel import SQLModel, Field, Column

from app.core import now_local

# Bookings in these states no longer hold their slot
ACTIVE_SLOT_FILTER = "staff_id IS NOT NULL AND status NOT IN ('CANCELLED', 'NO_SHOW')"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    phone: Optional[str] = Field(default=None, index=True, unique=True)
    name: str
    password_hash: str
    role: str = "CUSTOMER"  # CUSTOMER, STAFF, SALON_OWNER or SUPER_ADMIN
    is_active: bool = True
    created_at: datetime = Field(default_factory=now_local)
    last_login_at: Optional[datetime] = None


class Salon(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: int = Field(foreign_key="user.id", index=True)

    name: str
    slug: str = Field(index=True, unique=True)
    description: Optional[str] = None
    address: str
    city: str = Field(index=True)
    district: str
    phone: str
    email: Optional[str] = None

    open_time: time
    close_time: time
    working_days: List[int] = Field(
        default_factory=lambda: [0, 1, 2, 3, 4, 5, 6],
        sa_column=Column(JSON),
    )  # 0=Mon ... 6=Sun

    bank_code: Optional[str] = None
    bank_account: Optional[str] = None
    bank_name: Optional[str] = None

    is_active: bool = True
    created_at: datetime = Field(default_factory=now_local)


class Service(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    salon_id: int = Field(foreign_key="salon.id", index=True)

    name: str
    description: Optional[str] = None
    price: int  # VND
    duration: int  # minutes
    category: str = "HAIRCUT"
    order: int = 0
    is_active: bool = True


class Staff(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", unique=True)
    salon_id: int = Field(foreign_key="salon.id", index=True)

    position: str = "STYLIST"
    bio: Optional[str] = None
    rating: float = 0
    is_active: bool = True


class StaffSchedule(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("staff_id", "day_of_week", name="uq_staff_day"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    staff_id: int = Field(foreign_key="staff.id", index=True)
    day_of_week: int  # 0=Mon ... 6=Sun
    start_time: time
    end_time: time
    is_off: bool = False


class StaffBlock(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    staff_id: int = Field(foreign_key="staff.id", index=True)
    date: Date = Field(index=True)
    start: datetime
    end: datetime
    kind: str  # "lunch_break" or "day_off"


class Booking(SQLModel, table=True):
    __table_args__ = (
        Index(
            "uq_staff_active_start",
            "staff_id",
            "starts_at",
            unique=True,
            sqlite_where=text(ACTIVE_SLOT_FILTER),
            postgresql_where=text(ACTIVE_SLOT_FILTER),
        ),
        CheckConstraint("starts_at < ends_at", name="ck_booking_start_before_end"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    booking_code: str = Field(index=True, unique=True)

    customer_id: int = Field(foreign_key="user.id", index=True)
    salon_id: int = Field(foreign_key="salon.id", index=True)
    staff_id: Optional[int] = Field(default=None, foreign_key="staff.id", index=True)

    starts_at: datetime = Field(index=True)
    ends_at: datetime
    total_duration: int
    total_amount: int

    status: str = "PENDING"
    payment_status: str = "UNPAID"
    payment_method: Optional[str] = None
    note: Optional[str] = None

    cancel_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[int] = None

    created_at: datetime = Field(default_factory=now_local)


class BookingService(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    booking_id: int = Field(foreign_key="booking.id", index=True)
    service_id: int = Field(foreign_key="service.id")
    price: int
    duration: int


class Payment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    booking_id: int = Field(foreign_key="booking.id", unique=True)

    amount: int
    method: str  # CASH, BANK_TRANSFER or VIETQR
    status: str = "PENDING"

    qr_code: Optional[str] = None
    qr_content: Optional[str] = None
    bank_code: Optional[str] = None
    bank_account: Optional[str] = None
    transfer_content: Optional[str] = None

    expires_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    sepay_trans_id: Optional[str] = None
    sepay_ref: Optional[str] = None
    attempts: int = 1

    created_at: datetime = Field(default_factory=now_local)


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)

    type: str
    title: str
    message: str
    data: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    is_read: bool = False
    read_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=now_local)


class Review(SQLModel, table=True):
    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_review_rating"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    booking_id: int = Field(foreign_key="booking.id", unique=True)
    customer_id: int = Field(foreign_key="user.id")
    salon_id: int = Field(foreign_key="salon.id", index=True)
    staff_id: Optional[int] = Field(default=None, foreign_key="staff.id")

    rating: int
    comment: Optional[str] = None
    reply: Optional[str] = None
    replied_at: Optional[datetime] = None
    is_visible: bool = True

    created_at: datetime = Field(default_factory=now_local)
