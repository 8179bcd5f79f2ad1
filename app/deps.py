# app/deps.py

from fastapi import HTTPException
from sqlmodel import Session, select

from app.models import Salon, Staff

# SUPER_ADMIN > SALON_OWNER > STAFF > CUSTOMER
ROLE_LEVELS = {
    "SUPER_ADMIN": 100,
    "SALON_OWNER": 50,
    "STAFF": 25,
    "CUSTOMER": 10,
}


def role_value(role) -> str:
    return getattr(role, "value", role)


def has_role(user: dict, role) -> bool:
    return ROLE_LEVELS.get(user["role"], 0) >= ROLE_LEVELS[role_value(role)]


def require_role(user: dict, role):
    if not has_role(user, role):
        raise HTTPException(status_code=403, detail="Forbidden")


def is_admin(user: dict) -> bool:
    return user["role"] == "SUPER_ADMIN"


def get_salon_or_404(session: Session, salon_id: int) -> Salon:
    salon = session.get(Salon, salon_id)
    if salon is None:
        raise HTTPException(status_code=404, detail=f"Salon with ID {salon_id} not found")
    return salon


def require_salon_owner(session: Session, user: dict, salon_id: int) -> Salon:
    """Owner of the salon or super admin."""
    salon = get_salon_or_404(session, salon_id)
    if not is_admin(user) and salon.owner_id != user["id"]:
        raise HTTPException(status_code=403, detail="You can only manage your own salon")
    return salon


def is_salon_member(session: Session, user: dict, salon_id: int) -> bool:
    """Owner, active staff member of the salon, or super admin."""
    if is_admin(user):
        return True
    salon = session.get(Salon, salon_id)
    if salon is not None and salon.owner_id == user["id"]:
        return True
    staff = session.exec(
        select(Staff)
        .where(Staff.user_id == user["id"])
        .where(Staff.salon_id == salon_id)
        .where(Staff.is_active == True)  # noqa: E712
    ).first()
    return staff is not None


def require_salon_member(session: Session, user: dict, salon_id: int):
    if not is_salon_member(session, user, salon_id):
        raise HTTPException(status_code=403, detail="You do not have access to this salon")
