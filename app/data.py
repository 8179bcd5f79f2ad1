# app/data.py
"""
Default service catalogue and demo data.

    python -m app.data

creates the tables and seeds an admin, one salon owner with a salon, its
services and a stylist. Running it again leaves existing data untouched.
"""

import logging
import logging.config
import os
from datetime import time

from sqlmodel import Session, select

from app.auth import hash_password
from app.config import LOGGING
from app.models import User, Salon, Service, Staff
from app.routers.staff_routes import add_default_schedule

logger = logging.getLogger(__name__)

DEMO_PASSWORD = os.getenv("DEMO_PASSWORD", "admin12345")

SERVICES = [
    {"name": "Cắt tóc nam", "description": "Cắt tóc nam cơ bản, tạo kiểu theo yêu cầu",
     "price": 100000, "duration": 30, "category": "HAIRCUT"},
    {"name": "Cắt tóc + Gội massage", "description": "Combo cắt tóc kèm gội đầu massage thư giãn",
     "price": 150000, "duration": 45, "category": "COMBO"},
    {"name": "Cạo mặt + Đắp mặt nạ", "description": "Cạo râu, cạo mặt kèm đắp mặt nạ dưỡng da",
     "price": 80000, "duration": 25, "category": "FACIAL"},
    {"name": "Nhuộm tóc", "description": "Nhuộm tóc các màu theo xu hướng",
     "price": 250000, "duration": 90, "category": "HAIR_COLORING"},
    {"name": "Uốn tóc Hàn Quốc", "description": "Uốn tóc Hàn Quốc, tạo kiểu độc đáo",
     "price": 350000, "duration": 120, "category": "HAIR_STYLING"},
    {"name": "VIP Combo", "description": "Cắt + Gội + Cạo mặt + Đắp mặt nạ + Massage vai cổ",
     "price": 300000, "duration": 90, "category": "COMBO"},
]

DEMO_SALON = {
    "name": "Reetro Quận 1",
    "slug": "reetro-quan-1",
    "description": "Tiệm cắt tóc nam cao cấp tại Quận 1",
    "address": "123 Nguyễn Huệ, Q.1, TP.HCM",
    "city": "Hồ Chí Minh",
    "district": "Quận 1",
    "phone": "0909123456",
    "email": "q1@reetro.vn",
    "open_time": time(8, 30),
    "close_time": time(20, 30),
    "working_days": [0, 1, 2, 3, 4, 5, 6],
    "bank_code": "MB",
    "bank_account": "0123456789",
    "bank_name": "REETRO BARBERSHOP",
}


def get_or_create_user(session: Session, email: str, phone: str, name: str, role: str) -> User:
    user = session.exec(select(User).where(User.email == email)).first()
    if user is None:
        user = User(
            email=email,
            phone=phone,
            name=name,
            password_hash=hash_password(DEMO_PASSWORD),
            role=role,
        )
        session.add(user)
        session.flush()
    return user


def seed_demo(session: Session) -> dict:
    admin = get_or_create_user(session, "admin@reetro.vn", "0909000001", "Admin", "SUPER_ADMIN")
    owner = get_or_create_user(session, "owner@reetro.vn", "0909000002", "Chủ tiệm", "SALON_OWNER")
    stylist_user = get_or_create_user(session, "minh.barber@reetro.vn", "0909001001", "Minh Barber", "STAFF")

    salon = session.exec(select(Salon).where(Salon.slug == DEMO_SALON["slug"])).first()
    if salon is None:
        salon = Salon(**DEMO_SALON, owner_id=owner.id)
        session.add(salon)
        session.flush()
        for order, item in enumerate(SERVICES, start=1):
            session.add(Service(salon_id=salon.id, order=order, **item))

    staff = session.exec(select(Staff).where(Staff.user_id == stylist_user.id)).first()
    if staff is None:
        staff = Staff(user_id=stylist_user.id, salon_id=salon.id, position="SENIOR_STYLIST")
        session.add(staff)
        session.flush()
        add_default_schedule(session, staff.id)

    session.commit()
    logger.info("Demo data ready: salon %s (%s)", salon.id, salon.slug)
    return {
        "admin_id": admin.id,
        "owner_id": owner.id,
        "salon_id": salon.id,
        "staff_id": staff.id,
    }


if __name__ == "__main__":
    from app.db import engine, create_db_and_tables

    logging.config.dictConfig(LOGGING)
    create_db_and_tables()
    with Session(engine) as session:
        seed_demo(session)
