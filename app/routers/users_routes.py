# app/routers/users_routes.py

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from app.db import get_session
from app.models import User
from app.schemas import UserPublic, UserUpdate
from app.auth import get_current_user, user_to_dict

router = APIRouter(
    tags=["users"],
)


@router.get("/me", response_model=UserPublic)
def me(current_user: dict = Depends(get_current_user)):
    return current_user


@router.patch("/me", response_model=UserPublic)
def update_me(
    changes: UserUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    user = session.get(User, current_user["id"])

    if changes.phone is not None and changes.phone != user.phone:
        taken = session.exec(
            select(User).where(User.phone == changes.phone)
        ).first()
        if taken is not None:
            raise HTTPException(status_code=409, detail="Phone already registered")
        user.phone = changes.phone

    if changes.name is not None:
        user.name = changes.name

    session.add(user)
    session.commit()
    session.refresh(user)
    return user_to_dict(user)
