# app/schemas.py

from pydantic import BaseModel, ConfigDict, Field
from enum import Enum
from datetime import datetime, date, time
from typing import List, Optional, Union

from app.config import DEFAULT_OPEN_TIME, DEFAULT_CLOSE_TIME

HHMM_PATTERN = r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$"
SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


class Role(str, Enum):
    customer = "CUSTOMER"
    staff = "STAFF"
    salon_owner = "SALON_OWNER"
    super_admin = "SUPER_ADMIN"


class BookingStatus(str, Enum):
    pending = "PENDING"
    confirmed = "CONFIRMED"
    in_progress = "IN_PROGRESS"
    completed = "COMPLETED"
    cancelled = "CANCELLED"
    no_show = "NO_SHOW"


class PaymentStatus(str, Enum):
    unpaid = "UNPAID"
    pending = "PENDING"
    paid = "PAID"
    failed = "FAILED"
    refunded = "REFUNDED"


class PaymentMethod(str, Enum):
    cash = "CASH"
    bank_transfer = "BANK_TRANSFER"
    vietqr = "VIETQR"


class ServiceCategory(str, Enum):
    haircut = "HAIRCUT"
    hair_styling = "HAIR_STYLING"
    hair_coloring = "HAIR_COLORING"
    hair_treatment = "HAIR_TREATMENT"
    shave = "SHAVE"
    facial = "FACIAL"
    combo = "COMBO"
    other = "OTHER"


class StaffPosition(str, Enum):
    stylist = "STYLIST"
    senior_stylist = "SENIOR_STYLIST"
    master_stylist = "MASTER_STYLIST"
    skinner = "SKINNER"
    manager = "MANAGER"


class BlockKind(str, Enum):
    lunch_break = "lunch_break"
    day_off = "day_off"


class NotificationType(str, Enum):
    booking_created = "BOOKING_CREATED"
    booking_confirmed = "BOOKING_CONFIRMED"
    booking_cancelled = "BOOKING_CANCELLED"
    booking_reminder = "BOOKING_REMINDER"
    payment_received = "PAYMENT_RECEIVED"
    review_received = "REVIEW_RECEIVED"


class StatsPeriod(str, Enum):
    day = "day"
    week = "week"
    month = "month"


class PageMeta(BaseModel):
    total: int
    skip: int
    take: int
    has_more: bool


# ---------- users / auth ----------

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserCreate(BaseModel):
    email: str
    password: str = Field(min_length=8, max_length=72)
    name: str = Field(min_length=1)
    phone: Optional[str] = None


class UserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = None


class UserPublic(BaseModel):
    id: int
    email: str
    phone: Optional[str] = None
    name: str
    role: Role
    is_active: bool = True


class RoleUpdate(BaseModel):
    role: Role


# ---------- salons ----------

class SalonCreate(BaseModel):
    name: str
    slug: str = Field(pattern=SLUG_PATTERN)
    description: Optional[str] = None
    address: str
    city: str
    district: str
    phone: str
    email: Optional[str] = None
    open_time: time = datetime.strptime(DEFAULT_OPEN_TIME, "%H:%M").time()
    close_time: time = datetime.strptime(DEFAULT_CLOSE_TIME, "%H:%M").time()
    working_days: List[int] = [0, 1, 2, 3, 4, 5, 6]     # 0=Mon, 1=Tues....
    bank_code: Optional[str] = None
    bank_account: Optional[str] = None
    bank_name: Optional[str] = None


class SalonUpdate(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = Field(default=None, pattern=SLUG_PATTERN)
    description: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    open_time: Optional[time] = None
    close_time: Optional[time] = None
    working_days: Optional[List[int]] = None
    bank_code: Optional[str] = None
    bank_account: Optional[str] = None
    bank_name: Optional[str] = None
    is_active: Optional[bool] = None


class SalonPublic(BaseModel):
    id: int
    owner_id: int
    name: str
    slug: str
    description: Optional[str] = None
    address: str
    city: str
    district: str
    phone: str
    email: Optional[str] = None
    open_time: time
    close_time: time
    working_days: List[int]
    bank_code: Optional[str] = None
    bank_account: Optional[str] = None
    bank_name: Optional[str] = None
    is_active: bool
    average_rating: float = 0


class SalonPage(BaseModel):
    data: List[SalonPublic]
    meta: PageMeta


# ---------- services ----------

class ServiceCreate(BaseModel):
    salon_id: int
    name: str
    description: Optional[str] = None
    price: int = Field(ge=0)
    duration: int = Field(ge=5)
    category: ServiceCategory = ServiceCategory.haircut
    order: Optional[int] = None


class ServiceUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[int] = Field(default=None, ge=0)
    duration: Optional[int] = Field(default=None, ge=5)
    category: Optional[ServiceCategory] = None
    order: Optional[int] = None
    is_active: Optional[bool] = None


class ServicePublic(BaseModel):
    id: int
    salon_id: int
    name: str
    description: Optional[str] = None
    price: int
    duration: int
    category: ServiceCategory
    order: int
    is_active: bool


class ServiceReorder(BaseModel):
    service_ids: List[int] = Field(min_length=1)


# ---------- staff ----------

class StaffCreate(BaseModel):
    user_id: int
    salon_id: int
    position: StaffPosition = StaffPosition.stylist
    bio: Optional[str] = None


class StaffUpdate(BaseModel):
    position: Optional[StaffPosition] = None
    bio: Optional[str] = None
    is_active: Optional[bool] = None


class StaffPublic(BaseModel):
    id: int
    user_id: int
    salon_id: int
    name: Optional[str] = None
    position: StaffPosition
    bio: Optional[str] = None
    rating: float
    is_active: bool


class ScheduleDay(BaseModel):
    day_of_week: int = Field(ge=0, le=6)     # 0=Mon ... 6=Sun
    start_time: time
    end_time: time
    is_off: bool = False


class BlockCreate(BaseModel):
    date: date
    start_time: Optional[time] = None
    kind: BlockKind


class BlockPublic(BaseModel):
    id: int
    staff_id: int
    date: date
    start: datetime
    end: datetime
    kind: BlockKind


class AvailabilityResponse(BaseModel):
    salon_id: int
    staff_id: Optional[int] = None
    date: date
    duration: int
    available_starts: List[str]


# ---------- bookings ----------

class BookingCreate(BaseModel):
    salon_id: int
    service_ids: List[int] = Field(min_length=1)
    staff_id: Optional[int] = None
    date: date
    time_slot: str = Field(pattern=HHMM_PATTERN)
    note: Optional[str] = None


class BookingStatusUpdate(BaseModel):
    status: BookingStatus
    cancel_reason: Optional[str] = None


class BookingCancel(BaseModel):
    reason: Optional[str] = None


class StaffAssign(BaseModel):
    staff_id: int


class BookingServicePublic(BaseModel):
    service_id: int
    name: str
    price: int
    duration: int


class BookingPublic(BaseModel):
    id: int
    booking_code: str
    customer_id: int
    salon_id: int
    staff_id: Optional[int] = None
    starts_at: datetime
    ends_at: datetime
    total_duration: int
    total_amount: int
    status: BookingStatus
    payment_status: PaymentStatus
    payment_method: Optional[PaymentMethod] = None
    note: Optional[str] = None
    cancel_reason: Optional[str] = None
    services: List[BookingServicePublic] = []


class BookingPage(BaseModel):
    data: List[BookingPublic]
    meta: PageMeta


# ---------- payments ----------

class PaymentCreate(BaseModel):
    booking_id: int
    method: PaymentMethod = PaymentMethod.vietqr


class QRRequest(BaseModel):
    booking_id: int


class PaymentConfirm(BaseModel):
    transaction_id: Optional[str] = None


class PaymentPublic(BaseModel):
    id: int
    booking_id: int
    amount: int
    method: PaymentMethod
    status: PaymentStatus
    qr_code: Optional[str] = None
    qr_content: Optional[str] = None
    bank_code: Optional[str] = None
    bank_account: Optional[str] = None
    transfer_content: Optional[str] = None
    expires_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    attempts: int


class QRCodeResponse(BaseModel):
    payment_id: int
    booking_id: int
    status: PaymentStatus
    qr_code: str
    qr_content: str
    amount: int
    bank_code: str
    bank_account: str
    bank_name: Optional[str] = None
    transfer_content: str
    expires_at: datetime


class PaymentStatusResponse(BaseModel):
    booking_id: int
    payment_id: Optional[int] = None
    status: PaymentStatus
    booking_status: BookingStatus
    expires_at: Optional[datetime] = None
    seconds_left: int = 0


class SepayWebhookPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Union[int, str]
    gateway: Optional[str] = None
    transaction_date: Optional[str] = Field(default=None, alias="transactionDate")
    account_number: Optional[str] = Field(default=None, alias="accountNumber")
    transfer_type: str = Field(default="in", alias="transferType")
    transfer_amount: float = Field(alias="transferAmount")
    content: str = ""
    reference_code: Optional[str] = Field(default=None, alias="referenceCode")
    description: Optional[str] = None


class WebhookResult(BaseModel):
    success: bool
    message: str


# ---------- notifications ----------

class NotificationPublic(BaseModel):
    id: int
    type: NotificationType
    title: str
    message: str
    data: Optional[dict] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class NotificationMeta(PageMeta):
    unread_count: int


class NotificationPage(BaseModel):
    data: List[NotificationPublic]
    meta: NotificationMeta


# ---------- reviews ----------

class ReviewCreate(BaseModel):
    booking_id: int
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None


class ReviewReply(BaseModel):
    reply: str = Field(min_length=1)


class ReviewPublic(BaseModel):
    id: int
    booking_id: int
    customer_id: int
    salon_id: int
    staff_id: Optional[int] = None
    rating: int
    comment: Optional[str] = None
    reply: Optional[str] = None
    replied_at: Optional[datetime] = None
    is_visible: bool
    created_at: datetime


class ReviewMeta(PageMeta):
    average_rating: float
    distribution: dict


class ReviewPage(BaseModel):
    data: List[ReviewPublic]
    meta: ReviewMeta
